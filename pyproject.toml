[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ckteec"
version = "0.1.0"
description = "Client-side serialization and token commands for a PKCS#11 trusted application, plus TEE ACL group helpers"
requires-python = ">=3.10"
dependencies = []
keywords = ["pkcs11", "cryptoki", "tee", "trusted-application", "serialization", "acl"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Security :: Cryptography",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["ckteec"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.mypy]
python_version = "3.10"
