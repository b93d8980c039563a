"""Shipline - branch-gated test, build, push, and deploy pipeline.

This package runs a project's tests, builds and pushes a container image
tagged from the current branch and commit, and creates a Kubernetes
Deployment for it when the production branch is deployed.
"""

__version__ = "0.1.0"
