"""Applicant intake API."""
