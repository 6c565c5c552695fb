"""
Configuration management for the Apparel Studio service
Loads settings from YAML files with environment variable overrides
"""

import os
import yaml
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field
from loguru import logger


class AppConfig(BaseModel):
    """Main application configuration"""

    # Flask settings
    SECRET_KEY: str = Field(default_factory=lambda: os.urandom(24).hex())
    FLASK_ENV: str = "development"
    DEBUG: bool = True
    TESTING: bool = False

    # Paths
    ASSETS_DIRECTORY: str = "assets"
    DESIGN_CONFIG_FILE: str = "config/geometry.yaml"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "logs/app.log"

    # Image loading
    IMAGE_LOAD_TIMEOUT: float = 10.0
    IMAGE_LOADER_WORKERS: int = 4
    IMAGE_CACHE_SIZE: int = 128
    IMAGE_ALLOWED_HOSTS: List[str] = Field(default_factory=list)
    EXPORT_PIXEL_RATIO: float = 2.0

    # External compositing service
    CLOUDINARY_CLOUD_NAME: Optional[str] = None
    CLOUDINARY_API_KEY: Optional[str] = None
    CLOUDINARY_API_SECRET: Optional[str] = None
    PRODUCTION_PREVIEW_WIDTH: int = 800

    # Pricing
    PLACEMENT_COST: float = 15.0
    MIN_BASE_PRICE: float = 20.0
    PRODUCT_PRICES: Dict[str, float] = Field(default_factory=dict)


class PlacementRect(BaseModel):
    """Percent-of-canvas print region for one placement key"""
    model_config = ConfigDict(frozen=True)

    top_percent: float
    left_percent: float
    width_percent: float
    height_percent: float
    centered: bool = False


class OverlaySlot(BaseModel):
    """Gravity + pixel offset position used by the external compositing service"""
    model_config = ConfigDict(frozen=True)

    gravity: str
    x: int = 0
    y: int = 0
    width: int
    font_size: int = 40


def _default_placement_rects() -> Dict[str, PlacementRect]:
    # front/back top is always replaced by the vertical anchor
    return {
        'front': PlacementRect(top_percent=32, left_percent=50, width_percent=22, height_percent=30, centered=True),
        'back': PlacementRect(top_percent=32, left_percent=50, width_percent=22, height_percent=30, centered=True),
        'chest_left': PlacementRect(top_percent=28, left_percent=29, width_percent=18, height_percent=16),
        'chest_right': PlacementRect(top_percent=28, left_percent=53, width_percent=18, height_percent=16),
    }


def _default_overlay_slots() -> Dict[str, OverlaySlot]:
    # Offsets of the print region centre from the centre of an 800x1067 base garment;
    # front/back y sits on the center anchor
    return {
        'front': OverlaySlot(gravity='center', x=0, y=-32, width=176, font_size=48),
        'back': OverlaySlot(gravity='center', x=0, y=-32, width=176, font_size=48),
        'chest_left': OverlaySlot(gravity='center', x=-96, y=-149, width=144, font_size=28),
        'chest_right': OverlaySlot(gravity='center', x=96, y=-149, width=144, font_size=28),
    }


class GeometryConfig(BaseModel):
    """Placement geometry table plus the anchors and presets shared by both renderers"""
    model_config = ConfigDict(frozen=True)

    placements: Dict[str, PlacementRect] = Field(default_factory=_default_placement_rects)
    vertical_anchors: Dict[str, float] = Field(
        default_factory=lambda: {'upper': 22.0, 'center': 32.0, 'lower': 42.0}
    )
    default_vertical: str = 'upper'
    reference_vertical: str = 'center'
    width_multipliers: Dict[str, float] = Field(
        default_factory=lambda: {'narrow': 0.8, 'standard': 1.0, 'wide': 1.45}
    )
    default_width_preset: str = 'standard'
    min_width_percent: float = 16.0
    max_width_percent: float = 42.0
    aspect_ratio: float = 4 / 3
    adjustable_areas: Tuple[str, ...] = ('front', 'back')


class GarmentImages(BaseModel):
    """Base garment image references for one color"""
    model_config = ConfigDict(frozen=True)

    front: Optional[str] = None
    back: Optional[str] = None
    fallback: str
    production_id: str


def _default_garments() -> Dict[str, GarmentImages]:
    return {
        'white': GarmentImages(
            front='base-shirts/white-front.png',
            back='base-shirts/white-back.png',
            fallback='base-shirts/white.png',
            production_id='base-shirts/white',
        ),
        'black': GarmentImages(
            front='base-shirts/black-front.png',
            back='base-shirts/black-back.png',
            fallback='base-shirts/black.png',
            production_id='base-shirts/black',
        ),
    }


class GarmentConfig(BaseModel):
    """Base garment lookup: (color, side) -> image reference"""
    model_config = ConfigDict(frozen=True)

    colors: Dict[str, GarmentImages] = Field(default_factory=_default_garments)
    default_color: str = 'white'


class FontConfig(BaseModel):
    """Font lookup for the raster renderer and the compositing service"""
    model_config = ConfigDict(frozen=True)

    fallback_family: str = 'Inter, system-ui, sans-serif'
    local_fonts: Dict[str, str] = Field(default_factory=lambda: {
        'inter': 'DejaVuSans.ttf',
        'arial': 'DejaVuSans.ttf',
        'roboto': 'DejaVuSans.ttf',
        'georgia': 'DejaVuSerif.ttf',
        'times new roman': 'DejaVuSerif.ttf',
        'courier new': 'DejaVuSansMono.ttf',
    })
    default_local_font: str = 'DejaVuSans.ttf'
    service_fonts: Dict[str, str] = Field(default_factory=lambda: {
        'inter': 'Arial',
        'arial': 'Arial',
        'roboto': 'Roboto',
        'georgia': 'Georgia',
        'times new roman': 'Times',
        'courier new': 'Courier',
    })
    default_service_font: str = 'Arial'


class DesignConfig(BaseModel):
    """Immutable design data injected into the geometry, render and preview components"""
    model_config = ConfigDict(frozen=True)

    geometry: GeometryConfig = Field(default_factory=GeometryConfig)
    overlay_slots: Dict[str, OverlaySlot] = Field(default_factory=_default_overlay_slots)
    garments: GarmentConfig = Field(default_factory=GarmentConfig)
    fonts: FontConfig = Field(default_factory=FontConfig)


def load_yaml_config(file_path: str) -> Dict:
    """Load configuration from YAML file"""
    path = Path(file_path)
    if not path.exists():
        logger.warning(f"Config file not found: {file_path}")
        return {}

    try:
        with open(path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f) or {}
    except Exception as e:
        logger.error(f"Error loading config file {file_path}: {e}")
        return {}


def load_config(environment: str = "development", overrides: Optional[Mapping[str, Any]] = None) -> AppConfig:
    """Load configuration with environment-specific overrides"""

    # Load base settings
    base_config = load_yaml_config("config/settings.yaml")

    # Load environment-specific settings
    env_config = load_yaml_config(f"config/settings_{environment}.yaml")

    # Merge configurations (env overrides base)
    config_dict = {**base_config, **env_config}

    # Apply environment variable overrides
    env_overrides = {
        'FLASK_ENV': os.getenv('FLASK_ENV', environment),
        'LOG_LEVEL': os.getenv('LOG_LEVEL'),
        'SECRET_KEY': os.getenv('SECRET_KEY'),
        'ASSETS_DIRECTORY': os.getenv('ASSETS_DIRECTORY'),
        'CLOUDINARY_CLOUD_NAME': os.getenv('CLOUDINARY_CLOUD_NAME'),
        'CLOUDINARY_API_KEY': os.getenv('CLOUDINARY_API_KEY'),
        'CLOUDINARY_API_SECRET': os.getenv('CLOUDINARY_API_SECRET'),
    }

    # Only include non-None values
    env_overrides = {k: v for k, v in env_overrides.items() if v is not None}
    config_dict.update(env_overrides)

    # Special handling for boolean DEBUG flag
    if 'FLASK_ENV' in config_dict:
        config_dict['DEBUG'] = config_dict['FLASK_ENV'] == 'development'

    if overrides:
        config_dict.update(overrides)

    try:
        return AppConfig(**config_dict)
    except Exception as e:
        logger.error(f"Configuration validation error: {e}")
        # Return default config on validation error
        return AppConfig()


def load_design_config(file_path: str = "config/geometry.yaml") -> DesignConfig:
    """Load the placement geometry, overlay slots, garments and fonts"""
    data = load_yaml_config(file_path)

    try:
        design = DesignConfig(**data)
    except Exception as e:
        logger.error(f"Design config validation error in {file_path}: {e}")
        design = DesignConfig()

    logger.info(f"Loaded design config: {len(design.geometry.placements)} placement areas, "
                f"{len(design.garments.colors)} garment colors")
    return design

