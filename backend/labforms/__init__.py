"""Recruitment application-form backend.

This package exposes the model, repository and service modules for
admin-authored application forms and the applications submitted against
them. It is intentionally lightweight; individual modules contain the
concrete implementations and documentation.
"""
