[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "wapfyi"
version = "0.1.0"
description = "A small URL shortener guarded by a browser-friendly proof-of-work challenge"
requires-python = ">=3.10"
keywords = ["url-shortener", "wap", "proof-of-work", "flask", "redis"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Web Environment",
    "Framework :: Flask",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: Dynamic Content",
]
dependencies = [
    "flask",
    "redis",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
wapfyi = "wapfyi.app:main"

[tool.hatch.build.targets.wheel]
packages = ["wapfyi"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
