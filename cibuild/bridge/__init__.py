"""Collaborators the build core calls into.

Modules
-------
vcs_url
    Parses repository URLs into host, owner and project name.
projects
    Project lookup by repository URL and per-project build numbering.
document_store
    In-memory and SQLite document stores behind one ``DocumentStore``
    protocol.
ssh
    Remote command execution with hookable per-line output handlers,
    and SSH access to build nodes.
"""
