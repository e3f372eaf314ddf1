from .pipeline_config import (  # noqa: F401
    CONFIG_ENV_VAR,
    CliConfig,
    CredentialConfig,
    InputsConfig,
    PipelineConfig,
    SmokeCheckConfig,
    TriggerConfig,
    build_pipeline_config,
    config_as_dict,
    load_pipeline_config,
    resolve_config_path,
)
