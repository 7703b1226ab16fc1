"""Settings loaded from keyword overrides, the environment and a YAML file."""

from pathlib import Path
from typing import Optional, Union

from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from forge_pull.constants import (
    API_REQUEST_TIMEOUT,
    DEFAULT_BOOTSTRAP_IMAGE,
    DEFAULT_TAG_PAGE_SIZE,
    ENV_PREFIX,
)

DEFAULT_CONFIG_FILE = Path("~/.config/forge/pull.yaml").expanduser()


class PullSettings(BaseSettings):
    """forge-pull settings.

    All values can be overridden via environment variables with the
    FORGE_PULL_ prefix. Example: FORGE_PULL_REGISTRY_TIMEOUT=60
    """

    bootstrap_image: str = DEFAULT_BOOTSTRAP_IMAGE
    registry_timeout: int = API_REQUEST_TIMEOUT
    registry_page_size: int = DEFAULT_TAG_PAGE_SIZE
    insecure_registries: list[str] = []  # reached over plain http

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        yaml_file=str(DEFAULT_CONFIG_FILE),
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Keyword overrides beat the environment, which beats the YAML file
        return (
            init_settings,
            env_settings,
            YamlConfigSettingsSource(settings_cls),
        )


def load_settings(config_file: Optional[Union[str, Path]] = None, **overrides) -> PullSettings:
    """
    Load settings, optionally from a specific YAML file.

    Args:
        config_file: YAML file replacing the default ~/.config/forge/pull.yaml
        **overrides: Explicit values (e.g. from CLI flags); None values are ignored

    Returns:
        Populated PullSettings
    """
    settings_cls = PullSettings
    if config_file is not None:
        class FileSettings(PullSettings):
            model_config = SettingsConfigDict(yaml_file=str(Path(config_file).expanduser()))

        settings_cls = FileSettings

    return settings_cls(**{k: v for k, v in overrides.items() if v is not None})
