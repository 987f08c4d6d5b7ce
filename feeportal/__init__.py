"""
Fee Portal: student fee-payment data layer.

Keeps a persistent collection of student records, a per-context login
session, and multiple execution contexts sharing the same storage in sync.
"""

__version__ = "1.0.0"
__author__ = "Fee Portal Development Team"
__description__ = "Student fee-payment portal core"
