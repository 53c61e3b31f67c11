# setup.py
from setuptools import setup, find_packages

setup(
    name="release_ledger",
    version="0.1.0",
    packages=find_packages(include=["release_ledger", "release_ledger.*"]),
    python_requires=">=3.9",
    install_requires=[
        "msgpack",            # snapshots, transaction signing data
        "plyvel",             # LevelDB persistence
        "cryptography",       # ECDSA keys and signatures
        "pycryptodome",       # keccak-256
        "prometheus_client",  # metrics
        "psutil",             # monitoring
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "release-ledger=release_ledger.deploy_tool:main",
        ],
    },
)
