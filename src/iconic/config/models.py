"""Configuration models describing Iconic settings."""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_CATEGORIES: List[str] = [
    "Synth",
    "Bass",
    "Drums",
    "Orchestral",
    "Piano & Keys",
    "FX - Reverb",
    "FX - Delay",
    "FX - Distortion",
    "FX - Dynamics",
    "FX - Modulation",
    "Mastering",
    "Utilities",
]

DEFAULT_PROFILES: Dict[str, List[str]] = {
    "default": list(DEFAULT_CATEGORIES),
    "electronic": [
        "Leads",
        "Pads",
        "Plucks",
        "Bass - Growl",
        "Bass - Sub",
        "FX - Risers",
        "Drums - Kick",
        "Drums - Snare",
    ],
    "orchestral": ["Strings", "Brass", "Woodwinds", "Percussion", "Choir", "Piano", "Hybrid"],
}


class IconicBaseModel(BaseModel):
    """Shared configuration for Iconic Pydantic models."""

    model_config = ConfigDict(extra="forbid")


class OracleSettings(IconicBaseModel):
    """Classification oracle configuration.

    Attributes:
        provider: Identifier for the language-model provider.
        model: Model name passed to DSPy when issuing requests.
        api_key: Credential for the hosted provider; analysis refuses to run without it.
        api_base_url: Custom endpoint (for self-hosted models); no key is required when set.
        temperature: Sampling temperature for generative calls.
        max_tokens: Maximum number of tokens in responses.
        max_attempts: Attempt cap shared by rate-limit and malformed-response retries.
        rate_limit_base_delay: Base delay in seconds for exponential rate-limit backoff.
        rate_limit_extra_delay: Constant delay added to every rate-limit backoff.
        malformed_retry_delay: Delay before retrying a malformed response.
    """

    provider: str = "gemini"
    model: str = "gemini/gemini-2.5-flash"
    api_key: Optional[str] = None
    api_base_url: Optional[str] = None
    temperature: float = 0.1
    max_tokens: int = 2_000
    max_attempts: int = Field(default=3, ge=1)
    rate_limit_base_delay: float = 2.0
    rate_limit_extra_delay: float = 1.0
    malformed_retry_delay: float = 1.0

    @property
    def has_credential(self) -> bool:
        """Whether requests can be authenticated (a key or a custom endpoint)."""
        return bool(self.api_key) or bool(self.api_base_url)


class AnalysisSettings(IconicBaseModel):
    """Settings that govern classification runs.

    Attributes:
        batch_size: Number of bundle names submitted to the oracle per request.
        cooldown_seconds: Wait inserted between oracle batches.
        cooldown_tick_seconds: Granularity of the cancellable cooldown wait.
        confidence_threshold: Rule count at which learned tags bypass the oracle.
        auto_execute: Whether to organize immediately after a completed analysis.
    """

    batch_size: int = Field(default=15, ge=1)
    cooldown_seconds: float = Field(default=4.0, ge=0)
    cooldown_tick_seconds: float = Field(default=0.1, gt=0)
    confidence_threshold: int = Field(default=2, ge=1)
    auto_execute: bool = False


class OrganizationOptions(IconicBaseModel):
    """Settings that govern physical relocation.

    Attributes:
        multi_tag: Copy bundles into every tagged category instead of only the first.
        deduplicate: Delete bundles flagged as duplicates during organize.
        dry_run: Plan operations without touching the filesystem.
        download_images: Run the image enrichment hook after scanning.
        unused_assets_dir: Folder collecting files that are not part of a bundle.
        uncategorized_label: Destination for bundles without tags.
        max_name_attempts: Numbered-suffix attempts before falling back to a timestamp.
        fingerprint_chunk_size: Bundles fingerprinted concurrently per chunk.
        autosave_delay_seconds: Trailing debounce window for state auto-save.
    """

    multi_tag: bool = True
    deduplicate: bool = True
    dry_run: bool = False
    download_images: bool = False
    unused_assets_dir: str = "_Unused_Assets"
    uncategorized_label: str = "Uncategorized"
    max_name_attempts: int = Field(default=1000, ge=2)
    fingerprint_chunk_size: int = Field(default=20, ge=1)
    autosave_delay_seconds: float = Field(default=2.0, ge=0)


class BundleFormats(IconicBaseModel):
    """File extensions recognized as bundle members.

    Attributes:
        main_extension: Extension of the main preset file.
        image_extensions: Extensions attached to a bundle as image sidecars.
        info_extensions: Extensions attached to a bundle as info-text sidecars.
    """

    main_extension: str = ".fst"
    image_extensions: List[str] = Field(default_factory=lambda: [".png"])
    info_extensions: List[str] = Field(default_factory=lambda: [".nfo"])

    @field_validator("main_extension")
    @classmethod
    def _normalize_main(cls, value: str) -> str:
        return _dotted(value)

    @field_validator("image_extensions", "info_extensions")
    @classmethod
    def _normalize_sides(cls, value: List[str]) -> List[str]:
        return [_dotted(item) for item in value]


class CategorySettings(IconicBaseModel):
    """Default category list and named presets.

    Attributes:
        defaults: Categories used when a folder has no saved state.
        profiles: Named category lists that can replace the current list.
    """

    defaults: List[str] = Field(default_factory=lambda: list(DEFAULT_CATEGORIES))
    profiles: Dict[str, List[str]] = Field(
        default_factory=lambda: {name: list(cats) for name, cats in DEFAULT_PROFILES.items()}
    )


class LoggingSettings(IconicBaseModel):
    """Runtime logging configuration.

    Attributes:
        level: Logging verbosity level.
        max_size_mb: Maximum log size before rotation.
        backup_count: Number of historical log files to retain.
    """

    level: str = "WARNING"
    max_size_mb: int = 100
    backup_count: int = 5


class CLIOptions(IconicBaseModel):
    """CLI behavior defaults and presentation preferences.

    Attributes:
        quiet_default: Whether commands suppress non-error output by default.
        summary_default: Whether commands only print summary lines by default.
    """

    quiet_default: bool = False
    summary_default: bool = False


class IconicConfig(IconicBaseModel):
    """Top-level configuration struct for Iconic.

    Attributes:
        oracle: Classification oracle settings.
        analysis: Classification run settings.
        organization: Relocation settings.
        bundles: Recognized bundle file extensions.
        categories: Default categories and profiles.
        logging: Logging configuration.
        cli: CLI presentation defaults.
    """

    oracle: OracleSettings = Field(default_factory=OracleSettings)
    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)
    organization: OrganizationOptions = Field(default_factory=OrganizationOptions)
    bundles: BundleFormats = Field(default_factory=BundleFormats)
    categories: CategorySettings = Field(default_factory=CategorySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    cli: CLIOptions = Field(default_factory=CLIOptions)


def _dotted(value: str) -> str:
    value = value.strip().lower()
    return value if value.startswith(".") else f".{value}"


__all__ = [
    "DEFAULT_CATEGORIES",
    "DEFAULT_PROFILES",
    "IconicBaseModel",
    "OracleSettings",
    "AnalysisSettings",
    "OrganizationOptions",
    "BundleFormats",
    "CategorySettings",
    "LoggingSettings",
    "CLIOptions",
    "IconicConfig",
]
