"""
Core modules for Call Billing.

This package contains billable-minute calculations, date range selectors,
billing periods, call statistics and billing period closing.
"""
