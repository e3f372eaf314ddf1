from .client import ClaspClient, DeployResult, parse_deployment_output  # noqa: F401
