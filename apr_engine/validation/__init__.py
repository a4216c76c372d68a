"""Candidate validation: patch application, test execution and repair drivers."""
