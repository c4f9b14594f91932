"""Release version of the serving operator."""

VERSION = 'v0.8.0'
