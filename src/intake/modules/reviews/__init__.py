"""
Reviews Module

Reviewer scoring, triage listing, status decisions and dashboard stats.
"""
