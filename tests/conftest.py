"""
Pytest configuration and fixtures for Apparel Studio tests.

Provides shared fixtures, test configuration, and utilities
for running tests across the entire application.
"""

import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict

import pytest
from PIL import Image

from apparel_studio import create_app
from apparel_studio.config import DesignConfig
from apparel_studio.geometry import GeometryResolver
from apparel_studio.image_loader import ImageLoader
from apparel_studio.production_preview import CloudinarySettings, ProductionPreviewGenerator
from apparel_studio.render import CanvasRenderer


CLOUD_NAME = 'demo-cloud'

GARMENT_COLORS = {
    'white': (255, 255, 255, 255),
    'black': (20, 20, 20, 255),
}


def _write_garments(assets_dir: Path):
    """Create solid-color base garment images for every color and side."""
    shirts = assets_dir / 'base-shirts'
    shirts.mkdir(parents=True, exist_ok=True)
    for color, fill in GARMENT_COLORS.items():
        for name in (f'{color}-front.png', f'{color}-back.png', f'{color}.png'):
            Image.new('RGBA', (300, 400), fill).save(shirts / name)

    designs = assets_dir / 'designs'
    designs.mkdir(parents=True, exist_ok=True)
    Image.new('RGBA', (64, 64), (255, 0, 0, 255)).save(designs / 'logo.png')


@pytest.fixture(scope='session')
def assets_dir():
    """Temporary asset directory with generated garment and design images."""
    temp_dir = Path(tempfile.mkdtemp())
    _write_garments(temp_dir)
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture(scope='session')
def app(assets_dir):
    """Create and configure a test Flask application."""
    log_dir = Path(tempfile.mkdtemp())
    app = create_app({
        'TESTING': True,
        'SECRET_KEY': 'test-key',
        'ASSETS_DIRECTORY': str(assets_dir),
        'LOG_FILE': str(log_dir / 'test.log'),
        'CLOUDINARY_CLOUD_NAME': CLOUD_NAME,
        'IMAGE_LOAD_TIMEOUT': 5.0,
        'EXPORT_PIXEL_RATIO': 1.0,
        'PRODUCT_PRICES': {'tee-classic': 25.0},
    })

    yield app

    app.extensions['apparel_studio']['loader'].dispose()
    shutil.rmtree(log_dir, ignore_errors=True)


@pytest.fixture
def client(app):
    """Create a test client for the Flask application."""
    return app.test_client()


@pytest.fixture(scope='session')
def design_config():
    """Built-in design defaults (same values as config/geometry.yaml)."""
    return DesignConfig()


@pytest.fixture(scope='session')
def resolver(design_config):
    return GeometryResolver(design_config.geometry)


@pytest.fixture
def loader(assets_dir):
    loader = ImageLoader(assets_dir, max_workers=2, timeout=5.0)
    yield loader
    loader.dispose()


@pytest.fixture
def renderer(resolver, design_config, loader):
    return CanvasRenderer(resolver, design_config.fonts, loader)


@pytest.fixture
def cloudinary_settings():
    return CloudinarySettings(cloud_name=CLOUD_NAME, api_key='key', api_secret='secret')


@pytest.fixture
def production_generator(cloudinary_settings, resolver, design_config):
    return ProductionPreviewGenerator(
        cloudinary_settings,
        resolver,
        design_config.overlay_slots,
        design_config.garments,
        design_config.fonts,
        base_width=800,
    )


class OrderFactory:
    """Builds stored order documents in each of the four design shapes."""

    @staticmethod
    def canonical(**overrides) -> Dict[str, Any]:
        order = {
            'id': 'order-canonical',
            'baseColor': 'white',
            'placements': [
                {'id': 1, 'area': 'front', 'verticalPosition': 'center', 'designType': 'text',
                 'designText': 'HELLO', 'designFont': 'Arial', 'designColor': '#ff0000'},
                {'id': 2, 'area': 'back', 'designType': 'image',
                 'designImageUrl': 'designs/logo.png'},
            ],
        }
        order.update(overrides)
        return order

    @staticmethod
    def sides(**overrides) -> Dict[str, Any]:
        order = {
            'id': 'order-sides',
            'baseColor': 'black',
            'designText': 'FLAT TEXT',
            'designColor': '#ffffff',
            'sides': {
                'front': {'enabled': True, 'designType': 'text', 'verticalPosition': 'lower'},
                'back': {'enabled': False, 'designType': 'text', 'designText': 'HIDDEN'},
            },
        }
        order.update(overrides)
        return order

    @staticmethod
    def legacy(**overrides) -> Dict[str, Any]:
        order = {
            'id': 'order-legacy',
            'baseShirt': {'productId': 'tee-classic', 'color': 'white', 'size': 'M', 'quantity': 2},
            'verticalPosition': 'center',
            'legacyPlacements': [
                {'placementKey': 'chest_left', 'label': 'chest left'},
                {'placementKey': 'back', 'label': 'back'},
            ],
            'designAssets': [
                {'placementKey': 'chest_left', 'type': 'text', 'sourceType': 'uploaded', 'text': 'TEAM'},
                {'placementKey': 'chest_left', 'type': 'text', 'sourceType': 'uploaded', 'text': 'IGNORED'},
                {'placementKey': 'back', 'type': 'image', 'sourceType': 'uploaded', 'imageUrl': 'designs/logo.png'},
                {'placementKey': 'front', 'type': 'text', 'sourceType': 'uploaded', 'text': 'ASSET ONLY'},
            ],
        }
        order.update(overrides)
        return order

    @staticmethod
    def flat(**overrides) -> Dict[str, Any]:
        order = {
            'id': 'order-flat',
            'baseColor': 'white',
            'placement': 'chest_right',
            'designType': 'text',
            'designText': 'SOLO',
        }
        order.update(overrides)
        return order

    @staticmethod
    def builder_payload(**overrides) -> Dict[str, Any]:
        payload = {
            'baseColor': 'white',
            'placement': 'front',
            'verticalPosition': 'upper',
            'designType': 'text',
            'designText': 'HELLO',
            'designFont': 'Arial',
            'designColor': '#000000',
            'quantity': 2,
            'deliveryName': 'Sam Doe',
            'deliveryAddress': '1 Main St',
            'phoneNumber': '555-0100',
        }
        payload.update(overrides)
        return payload

    @staticmethod
    def legacy_payload(**overrides) -> Dict[str, Any]:
        payload = {
            'baseShirt': {'productId': 'tee-classic', 'color': 'black', 'size': 'L', 'quantity': 3},
            'placements': [
                {'placementKey': 'front', 'label': 'Front'},
                {'placementKey': 'back', 'label': 'Back'},
            ],
            'designAssets': [
                {'placementKey': 'front', 'type': 'text', 'sourceType': 'uploaded', 'text': 'CREW'},
            ],
            'notes': 'rush',
            'delivery': {'address': '1 Main St', 'phone': '555-0100', 'email': 'sam@example.com'},
        }
        payload.update(overrides)
        return payload


@pytest.fixture
def orders():
    """Provide the OrderFactory class as a fixture."""
    return OrderFactory
