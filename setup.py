# Preview Service Setup

from setuptools import setup, find_packages

setup(
    name="preview-service",
    version="0.7.5",
    description="Local markdown live-preview server with WebSocket push updates",
    packages=find_packages(exclude=["preview_service.tests", "preview_service.tests.*"]),
    package_data={
        "preview_service": [
            "templates/*.html",
            "static/js/*.js",
            "static/css/*.css",
        ],
    },
    install_requires=[
        "fastapi>=0.109.0",
        "uvicorn[standard]>=0.27.0",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
        "markdown-it-py>=3.0.0",
        "mdit-py-plugins>=0.4.0",
        "jinja2>=3.1.0",
        "markupsafe>=2.1.0",
        "prometheus-client>=0.19.0",
        "websockets>=12.0",
        "httpx>=0.26.0",
        "rich>=13.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.23.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "preview-service=preview_service.cli:main",
        ],
    },
    python_requires=">=3.11",
)
