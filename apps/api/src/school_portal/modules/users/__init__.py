"""
Users Module

Admin and applicant accounts: listing, archive / unarchive, two-step
hard delete, and OTP-gated creation of new admins.
"""
