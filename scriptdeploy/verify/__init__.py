from .smoke import check_deployment, deployment_url  # noqa: F401
