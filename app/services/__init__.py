"""
Application services: check-in workflow, file storage, e-mail and reports.
"""
