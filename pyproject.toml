[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "hyperchain"
version = "0.2.1"
description = "Building blocks for a DAG-based blockchain: configuration, emission schedule, block primitives, sharding and a testnet monitor"
requires-python = ">=3.10"
keywords = ["blockchain", "dag", "cryptography", "sharding", "keccak", "blake3", "merkle"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Security :: Cryptography",
    "Topic :: System :: Distributed Computing",
]
dependencies = [
    "pycryptodome>=3.19",
    "cryptography>=41",
    "tomli>=2.0; python_version < '3.11'",
    "tomli-w>=1.0",
    "httpx>=0.25",
]

[project.optional-dependencies]
test = [
    "pytest>=7.4",
]

[project.scripts]
hyperchain-monitor = "hyperchain.monitor:main"

[tool.hatch.build.targets.wheel]
packages = ["hyperchain"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
