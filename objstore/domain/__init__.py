"""
Domain layer package housing object models, the multipart session state
machine and the in-process session repository.
"""
