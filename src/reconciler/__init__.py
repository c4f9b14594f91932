"""Reconciliation core for the serving operator.

Drives a KnativeServing resource through install, readiness checking and
cleanup of resources from earlier releases.
"""
