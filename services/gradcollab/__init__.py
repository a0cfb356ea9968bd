"""
GradCollab API package.

A FastAPI service where researchers publish task requests and collaboration
requests, browse each other's postings and invite collaborators by email.
"""
