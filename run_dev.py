#!/usr/bin/env python3
"""
Apparel Studio - Development Runner
Run this script to start the development server
"""

import os
import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

# Set environment defaults
os.environ.setdefault('FLASK_APP', 'apparel_studio')
os.environ.setdefault('FLASK_ENV', 'development')

from apparel_studio import create_app


def main():
    """Main entry point"""
    print("=" * 60)
    print("Apparel Studio - Development Server")
    print("=" * 60)

    # Create and configure the app
    app = create_app()

    # Print startup info
    print(f"Environment: {app.config.get('FLASK_ENV', 'unknown')}")
    print(f"Debug mode: {app.config.get('DEBUG', False)}")
    print(f"Log level: {app.config.get('LOG_LEVEL', 'INFO')}")

    # Validate configuration files
    missing_configs = [f for f in ('config/settings.yaml', 'config/geometry.yaml') if not Path(f).exists()]
    if missing_configs:
        print(f"⚠️  Missing config files: {', '.join(missing_configs)}")
        print("   Built-in defaults will be used.")

    # Check for base garment assets
    garments_dir = Path(app.config.get('ASSETS_DIRECTORY', 'assets')) / 'base-shirts'
    if not garments_dir.exists() or not any(garments_dir.glob('*.png')):
        print(f"⚠️  No base garment images found in {garments_dir}/")
        print("   Previews will render without the garment.")

    if not app.config.get('CLOUDINARY_CLOUD_NAME'):
        print("⚠️  CLOUDINARY_CLOUD_NAME not set, production previews are disabled")

    print("-" * 60)
    print("Starting development server...")
    print("API available at: http://localhost:5000")
    print("Press Ctrl+C to stop")
    print("-" * 60)

    # Run the development server
    app.run(
        host='0.0.0.0',
        port=5000,
        debug=app.config.get('DEBUG', True),
        use_reloader=True,
        threaded=True
    )


if __name__ == '__main__':
    main()
