from setuptools import setup, find_packages

setup(
    name="pool-portal",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={
        "website": ["templates/*.html", "templates/pages/*.html"],
    },
    install_requires=[
        "fastapi",
        "uvicorn",
        "pydantic>=2",
        "pydantic-settings",
        "structlog",
        "redis>=5.0.1",
        "aiohttp",
        "base58",
        "jinja2",
        "markupsafe",
        "watchdog",
        "prometheus-client",
        "slowapi"
    ],
    extras_require={
        "test": [
            "pytest",
            "httpx"
        ]
    },
    python_requires=">=3.9",
    entry_points={
        "console_scripts": [
            "pool-portal=website.server:main",
        ],
    }
)
