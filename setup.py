from setuptools import setup, find_packages
setup(
    name="market_sync",
    version="0.1.0",
    package_dir={"": "src"},
    packages=find_packages("src"),
    include_package_data=True,
    python_requires=">=3.9",
    install_requires=[
        "httpx",
        "fastapi",
        "pydantic",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        'console_scripts': [
            'market_sync=market_sync.__main__:main'
        ]
    }
)
