"""
settings.py

Persistent settings management for mmd2drawio.

Handles cross-platform settings storage using TOML format with platformdirs
for proper user config directory detection.

Settings file location:
    - Windows: %APPDATA%/mmd2drawio/settings.toml
    - macOS: ~/Library/Application Support/mmd2drawio/settings.toml
    - Linux: ~/.config/mmd2drawio/settings.toml

Default values are documented in comments throughout this file.
If settings.toml is corrupted, these defaults will be used.

The settings manager only *loads* values.  Conversions never read global
state: ``SettingsManager.to_config()`` produces an immutable
``ConversionConfig`` that callers pass explicitly through the pipeline, so
concurrent conversions with different themes cannot interfere.
"""

from __future__ import annotations

import copy
import sys
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Optional

import platformdirs

# TOML reading - use tomllib for Python 3.11+, tomli for earlier versions
if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

import tomli_w

APP_NAME = "mmd2drawio"


# =============================================================================
# Coordinate Mapper Settings
# =============================================================================

@dataclass
class CoordinateSettings:
    """Coordinate normalization settings.

    Defaults:
        margin: 40.0
        min_zoom: 0.25
        max_zoom: 4.0
        container_padding: 20.0
        container_header: 24.0
        flip_y: False
    """
    margin: float = 40.0             # Default: 40.0 canvas units from origin
    min_zoom: float = 0.25           # Default: 0.25 (scale floor)
    max_zoom: float = 4.0            # Default: 4.0 (scale ceiling)
    container_padding: float = 20.0  # Default: 20.0 around children
    container_header: float = 24.0   # Default: 24.0 extra room for the label
    flip_y: bool = False             # Default: False (SVG is already y-down)


# =============================================================================
# Layout Fallback Settings
# =============================================================================

@dataclass
class LayoutSettings:
    """Layered layout settings.

    Defaults:
        direction: "TB"
        rank_separation: 80.0
        node_separation: 40.0
        barycenter_passes: 4
        overlap_tolerance: 0.25
        max_iterations: 10000
        default_node_width: 120.0
        default_node_height: 60.0
    """
    direction: str = "TB"              # Default: "TB" (ranks top to bottom); "LR" also valid
    rank_separation: float = 80.0      # Default: 80.0 between ranks
    node_separation: float = 40.0      # Default: 40.0 between nodes of a rank
    barycenter_passes: int = 4         # Default: 4 down+up sweeps
    overlap_tolerance: float = 0.25    # Default: 25% of node pairs overlapping
    max_iterations: int = 10000        # Default: 10000 cycle-breaking steps
    default_node_width: float = 120.0  # Default: 120.0 for nodes without size
    default_node_height: float = 60.0  # Default: 60.0 for nodes without size


# =============================================================================
# Classification Settings
# =============================================================================

@dataclass
class ClassificationSettings:
    """Shape classification tolerances.

    Defaults:
        angle_tolerance: 8.0
        label_distance: 24.0
        endpoint_tolerance: 16.0
        edge_label_distance: 48.0
        min_shape_size: 2.0
        containment_tolerance: 1.0
    """
    angle_tolerance: float = 8.0          # Default: 8.0 degrees from a right angle
    label_distance: float = 24.0          # Default: 24.0 text-to-shape attach distance
    endpoint_tolerance: float = 16.0      # Default: 16.0 edge end to node box distance
    edge_label_distance: float = 48.0     # Default: 48.0 label to path midpoint distance
    min_shape_size: float = 2.0           # Default: 2.0 ignore slivers below this
    containment_tolerance: float = 1.0    # Default: 1.0 slack for "inside"


# =============================================================================
# Renderer Settings
# =============================================================================

@dataclass
class RendererSettings:
    """Mermaid CLI settings.

    Defaults:
        mmdc_path: "" (search MMDC_PATH, then PATH)
        timeout: 60.0
        retries: 2
        retry_backoff: 0.5
        puppeteer_args: ["--no-sandbox"]
        background: "white"
    """
    mmdc_path: str = ""                # Default: "" (auto-detect)
    timeout: float = 60.0              # Default: 60.0 seconds per conversion
    retries: int = 2                   # Default: 2 retries after the first attempt
    retry_backoff: float = 0.5         # Default: 0.5 seconds, doubled per attempt
    puppeteer_args: List[str] = field(default_factory=lambda: ["--no-sandbox"])  # Default: ["--no-sandbox"]
    background: str = "white"          # Default: "white"


# =============================================================================
# Batch Settings
# =============================================================================

@dataclass
class BatchSettings:
    """Batch conversion settings.

    Defaults:
        max_concurrency: 4
        pool_size: 4
    """
    max_concurrency: int = 4  # Default: 4 conversions in flight
    pool_size: int = 4        # Default: 4 rendering sandboxes


# =============================================================================
# Main App Settings
# =============================================================================

@dataclass
class AppSettings:
    """Application settings with default values.

    Attributes:
        theme: Style theme name (must match a key in styles.THEMES).
        source_units: Unit system of rendered SVG coordinates.
        validate_output: Validate built documents against the JSON schema.
        trace: Enable debug_trace output.
        log_file: Optional trace log file.
    """
    theme: str = "default"           # Default: "default"
    source_units: str = "px"         # Default: "px"
    validate_output: bool = True     # Default: True
    trace: bool = False              # Default: False
    log_file: str = ""               # Default: "" (stderr only)

    coordinates: CoordinateSettings = field(default_factory=CoordinateSettings)
    layout: LayoutSettings = field(default_factory=LayoutSettings)
    classification: ClassificationSettings = field(default_factory=ClassificationSettings)
    renderer: RendererSettings = field(default_factory=RendererSettings)
    batch: BatchSettings = field(default_factory=BatchSettings)


# =============================================================================
# Conversion Config (explicit per-call value)
# =============================================================================

@dataclass(frozen=True)
class ConversionConfig:
    """Immutable snapshot of everything one conversion needs.

    Built from ``AppSettings`` (or directly with defaults) and threaded
    through every pipeline stage.  Use ``with_overrides`` for per-call
    changes; the original is never modified.
    """
    theme: str = "default"
    source_units: str = "px"
    validate_output: bool = True
    coordinates: CoordinateSettings = field(default_factory=CoordinateSettings)
    layout: LayoutSettings = field(default_factory=LayoutSettings)
    classification: ClassificationSettings = field(default_factory=ClassificationSettings)
    renderer: RendererSettings = field(default_factory=RendererSettings)
    batch: BatchSettings = field(default_factory=BatchSettings)

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "ConversionConfig":
        s = copy.deepcopy(settings)
        return cls(
            theme=s.theme,
            source_units=s.source_units,
            validate_output=s.validate_output,
            coordinates=s.coordinates,
            layout=s.layout,
            classification=s.classification,
            renderer=s.renderer,
            batch=s.batch,
        )

    def with_overrides(self, **kwargs: Any) -> "ConversionConfig":
        """Return a copy with top-level fields replaced.

        Nested sections are deep-copied so the copy shares no mutable state.
        """
        clone = copy.deepcopy(self)
        return replace(clone, **kwargs)

    def with_layout(self, **kwargs: Any) -> "ConversionConfig":
        return self.with_overrides(layout=replace(self.layout, **kwargs))

    def with_coordinates(self, **kwargs: Any) -> "ConversionConfig":
        return self.with_overrides(coordinates=replace(self.coordinates, **kwargs))


# =============================================================================
# Settings Manager
# =============================================================================

class SettingsManager:
    """Manages loading, saving, and accessing converter settings.

    Settings are stored in a TOML file at the platform-appropriate location.
    If the settings file doesn't exist, defaults are used and the file is
    created on first save.

    Args:
        app_name: Application name used for the config directory.
        settings_file: Explicit settings file (overrides the platform path).
    """

    def __init__(self, app_name: str = APP_NAME, settings_file: Optional[Path] = None):
        if settings_file is not None:
            self.settings_file = Path(settings_file)
            self.settings_dir = self.settings_file.parent
        else:
            self.settings_dir = Path(platformdirs.user_config_dir(app_name))
            self.settings_file = self.settings_dir / "settings.toml"
        self.settings = self.load()

    def load(self) -> AppSettings:
        """Load settings from the TOML file.

        Returns:
            AppSettings instance with values from file or defaults if file
            doesn't exist or is invalid.
        """
        if not self.settings_file.exists():
            return AppSettings()

        try:
            with open(self.settings_file, "rb") as f:
                data = tomllib.load(f)

            return self._parse_toml(data)
        except (OSError, tomllib.TOMLDecodeError, TypeError, ValueError):
            # If file is corrupted or invalid, return defaults
            return AppSettings()

    def _parse_toml(self, data: Dict[str, Any]) -> AppSettings:
        """Parse TOML data into AppSettings.

        Args:
            data: Parsed TOML dictionary.

        Returns:
            AppSettings instance populated from TOML data.
        """
        settings = AppSettings()

        # General section
        general = data.get("general", {})
        settings.theme = general.get("theme", settings.theme)
        settings.source_units = general.get("source_units", settings.source_units)
        settings.validate_output = general.get("validate_output", settings.validate_output)
        settings.trace = general.get("trace", settings.trace)
        settings.log_file = general.get("log_file", settings.log_file)

        # Coordinates section
        if "coordinates" in data:
            c = data["coordinates"]
            settings.coordinates.margin = float(c.get("margin", settings.coordinates.margin))
            settings.coordinates.min_zoom = float(c.get("min_zoom", settings.coordinates.min_zoom))
            settings.coordinates.max_zoom = float(c.get("max_zoom", settings.coordinates.max_zoom))
            settings.coordinates.container_padding = float(c.get("container_padding", settings.coordinates.container_padding))
            settings.coordinates.container_header = float(c.get("container_header", settings.coordinates.container_header))
            settings.coordinates.flip_y = bool(c.get("flip_y", settings.coordinates.flip_y))

        # Layout section
        if "layout" in data:
            lo = data["layout"]
            settings.layout.direction = lo.get("direction", settings.layout.direction)
            settings.layout.rank_separation = float(lo.get("rank_separation", settings.layout.rank_separation))
            settings.layout.node_separation = float(lo.get("node_separation", settings.layout.node_separation))
            settings.layout.barycenter_passes = int(lo.get("barycenter_passes", settings.layout.barycenter_passes))
            settings.layout.overlap_tolerance = float(lo.get("overlap_tolerance", settings.layout.overlap_tolerance))
            settings.layout.max_iterations = int(lo.get("max_iterations", settings.layout.max_iterations))
            settings.layout.default_node_width = float(lo.get("default_node_width", settings.layout.default_node_width))
            settings.layout.default_node_height = float(lo.get("default_node_height", settings.layout.default_node_height))

        # Classification section
        if "classification" in data:
            cl = data["classification"]
            settings.classification.angle_tolerance = float(cl.get("angle_tolerance", settings.classification.angle_tolerance))
            settings.classification.label_distance = float(cl.get("label_distance", settings.classification.label_distance))
            settings.classification.endpoint_tolerance = float(cl.get("endpoint_tolerance", settings.classification.endpoint_tolerance))
            settings.classification.edge_label_distance = float(cl.get("edge_label_distance", settings.classification.edge_label_distance))
            settings.classification.min_shape_size = float(cl.get("min_shape_size", settings.classification.min_shape_size))
            settings.classification.containment_tolerance = float(cl.get("containment_tolerance", settings.classification.containment_tolerance))

        # Renderer section
        if "renderer" in data:
            r = data["renderer"]
            settings.renderer.mmdc_path = r.get("mmdc_path", settings.renderer.mmdc_path)
            settings.renderer.timeout = float(r.get("timeout", settings.renderer.timeout))
            settings.renderer.retries = int(r.get("retries", settings.renderer.retries))
            settings.renderer.retry_backoff = float(r.get("retry_backoff", settings.renderer.retry_backoff))
            settings.renderer.puppeteer_args = list(r.get("puppeteer_args", settings.renderer.puppeteer_args))
            settings.renderer.background = r.get("background", settings.renderer.background)

        # Batch section
        if "batch" in data:
            b = data["batch"]
            settings.batch.max_concurrency = int(b.get("max_concurrency", settings.batch.max_concurrency))
            settings.batch.pool_size = int(b.get("pool_size", settings.batch.pool_size))

        return settings

    def save(self) -> None:
        """Save current settings to the TOML file.

        Creates the settings directory if it doesn't exist.
        """
        self.settings_dir.mkdir(parents=True, exist_ok=True)

        data = self._to_toml_dict()

        with open(self.settings_file, "wb") as f:
            tomli_w.dump(data, f)

    def _to_toml_dict(self) -> Dict[str, Any]:
        """Convert settings to a TOML-compatible dictionary structure.

        Returns:
            Dictionary organized by TOML sections.
        """
        s = self.settings
        return {
            "general": {
                "theme": s.theme,
                "source_units": s.source_units,
                "validate_output": s.validate_output,
                "trace": s.trace,
                "log_file": s.log_file,
            },
            "coordinates": {
                "margin": s.coordinates.margin,
                "min_zoom": s.coordinates.min_zoom,
                "max_zoom": s.coordinates.max_zoom,
                "container_padding": s.coordinates.container_padding,
                "container_header": s.coordinates.container_header,
                "flip_y": s.coordinates.flip_y,
            },
            "layout": {
                "direction": s.layout.direction,
                "rank_separation": s.layout.rank_separation,
                "node_separation": s.layout.node_separation,
                "barycenter_passes": s.layout.barycenter_passes,
                "overlap_tolerance": s.layout.overlap_tolerance,
                "max_iterations": s.layout.max_iterations,
                "default_node_width": s.layout.default_node_width,
                "default_node_height": s.layout.default_node_height,
            },
            "classification": {
                "angle_tolerance": s.classification.angle_tolerance,
                "label_distance": s.classification.label_distance,
                "endpoint_tolerance": s.classification.endpoint_tolerance,
                "edge_label_distance": s.classification.edge_label_distance,
                "min_shape_size": s.classification.min_shape_size,
                "containment_tolerance": s.classification.containment_tolerance,
            },
            "renderer": {
                "mmdc_path": s.renderer.mmdc_path,
                "timeout": s.renderer.timeout,
                "retries": s.renderer.retries,
                "retry_backoff": s.renderer.retry_backoff,
                "puppeteer_args": s.renderer.puppeteer_args,
                "background": s.renderer.background,
            },
            "batch": {
                "max_concurrency": s.batch.max_concurrency,
                "pool_size": s.batch.pool_size,
            },
        }

    def to_toml(self) -> str:
        """Convert current settings to a TOML-formatted string.

        Returns:
            TOML representation of the current settings.
        """
        return tomli_w.dumps(self._to_toml_dict())

    def to_config(self) -> ConversionConfig:
        """Snapshot the loaded settings as an immutable ``ConversionConfig``."""
        return ConversionConfig.from_settings(self.settings)

    def get_settings_path(self) -> Path:
        """Get the path to the settings file.

        Returns:
            Path object pointing to the settings file location.
        """
        return self.settings_file
