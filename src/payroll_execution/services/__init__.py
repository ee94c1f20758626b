"""Payroll execution services.

Import services from their modules (e.g.
``payroll_execution.services.run_service``); the pay calculator depends on
the state machine module, so this package stays import-free.
"""
