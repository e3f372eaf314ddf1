"""Continuous deployment for managed-script (Apps Script) projects.

On a push to ``main`` the pipeline pushes the local source tree with
``clasp push --force`` and publishes a deployment described as
``"Auto-deployment <timestamp>"``, updating an existing deployment when
``DEPLOYMENT_ID`` is set. The OAuth credential from ``CLASPRC_JSON`` only
exists on disk for the duration of the run.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
