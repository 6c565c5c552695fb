"""
Apparel Studio - Flask Application Factory
Custom apparel design composition: previews, production previews, pricing and order status
"""

import os
from pathlib import Path
from typing import Any, Mapping, Optional

from flask import Flask
from loguru import logger
from dotenv import load_dotenv

from .config import load_config, load_design_config


def create_app(overrides: Optional[Mapping[str, Any]] = None, environment: Optional[str] = None):
    """Flask application factory"""

    # Load environment variables
    load_dotenv()

    app = Flask(__name__)

    # Load configuration
    environment = environment or os.getenv('FLASK_ENV', 'development')
    config = load_config(environment, overrides)
    app.config.update(config.model_dump())

    # Configure logging
    setup_logging(app)

    # Build the composition services
    setup_services(app, config)

    # Register blueprints
    from . import routes
    app.register_blueprint(routes.bp)

    logger.info(f"Apparel Studio initialized in {environment} mode")

    return app


def setup_logging(app):
    """Configure loguru logging"""
    log_level = app.config.get('LOG_LEVEL', 'INFO')
    log_file = app.config.get('LOG_FILE', 'logs/app.log')

    # Ensure logs directory exists
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    logger.add(
        log_file,
        rotation="1 day",
        retention="30 days",
        level=log_level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function}:{line} | {message}"
    )


def setup_services(app, config):
    """Wire the geometry, renderer, preview, pricing and order services"""
    from .geometry import GeometryResolver
    from .image_loader import ImageLoader
    from .orders import CustomOrderService, InMemoryOrderRepository
    from .preview import OrderPreviewComposer
    from .pricing import PricingCalculator
    from .production_preview import CloudinarySettings, ProductionPreviewGenerator
    from .render import CanvasRenderer

    design = load_design_config(config.DESIGN_CONFIG_FILE)
    resolver = GeometryResolver(design.geometry)

    loader = ImageLoader(
        Path(config.ASSETS_DIRECTORY),
        max_workers=config.IMAGE_LOADER_WORKERS,
        timeout=config.IMAGE_LOAD_TIMEOUT,
        max_cached=config.IMAGE_CACHE_SIZE,
        allowed_hosts=config.IMAGE_ALLOWED_HOSTS,
    )
    renderer = CanvasRenderer(resolver, design.fonts, loader)

    generator = ProductionPreviewGenerator(
        CloudinarySettings.from_config(config),
        resolver,
        design.overlay_slots,
        design.garments,
        design.fonts,
        base_width=config.PRODUCTION_PREVIEW_WIDTH,
    )
    pricing = PricingCalculator(
        price_lookup=config.PRODUCT_PRICES.get,
        placement_cost=config.PLACEMENT_COST,
        min_base_price=config.MIN_BASE_PRICE,
    )

    app.extensions['apparel_studio'] = {
        'design': design,
        'resolver': resolver,
        'loader': loader,
        'renderer': renderer,
        'composer': OrderPreviewComposer(renderer, design.garments),
        'production_preview': generator,
        'orders': CustomOrderService(InMemoryOrderRepository(), pricing, generator),
    }
