[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "minhareceita"
version = "0.1.0"
description = "Download, check and sample the Brazilian Federal Revenue CNPJ open data, build one JSON record per CNPJ and serve the records over HTTP"
requires-python = ">=3.10"
keywords = ["cnpj", "receita federal", "open data", "brazil", "etl", "companies"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Natural Language :: Portuguese (Brazilian)",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database :: Front-Ends",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
]
dependencies = [
    "requests",
    "tqdm",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[project.scripts]
minha-receita = "minhareceita.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["minhareceita"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
