[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "kubedns"
version = "0.1.0"
description = "Cluster DNS helpers: record tree cache, federation flags, dnsmasq nanny, metrics sidecar and end-to-end test tooling"
requires-python = ">=3.10"
dependencies = [
    "dnspython",
]
keywords = ["dns", "dnsmasq", "kubernetes", "sidecar", "metrics", "probe"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: System Administrators",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: Name Service (DNS)",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["kubedns"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
ignore_missing_imports = true
