"""Medication reconciliation engine.

Compares a resident's medication lists across care transitions, records
the discrepancies found, and tracks their resolution and pharmacist
review through to sign-off.
"""
