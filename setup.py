#  ------------------------------------------------------------------------------------------
#  Copyright (c) Microsoft Corporation. All rights reserved.
#  Licensed under the MIT License (MIT). See LICENSE in the repo root for license information.
#  ------------------------------------------------------------------------------------------

"""A setuptools based setup module.

See:
https://packaging.python.org/guides/distributing-packages-using-setuptools/
"""

import os
import pathlib
from setuptools import setup, find_namespace_packages  # type: ignore


here = pathlib.Path(__file__).parent.resolve()

# Get the long description from the README file
long_description = (here / "package_description.md").read_text(encoding="utf-8")

version = ""

# If running from a GitHub Action then a standard set of environment variables will be
# populated (https://docs.github.com/en/actions/reference/environment-variables#default-environment-variables).
# In particular, GITHUB_REF is the branch or tag ref that triggered the workflow.
# If this was triggered by a tagged commit then GITHUB_REF will be: "ref/tags/new_tag".
# Extract this tag and use it as a version string
GITHUB_REF_TAG_COMMIT = "refs/tags/v"

github_ref = os.getenv("GITHUB_REF")
if github_ref and github_ref.startswith(GITHUB_REF_TAG_COMMIT):
    version = github_ref[len(GITHUB_REF_TAG_COMMIT):]

# Otherwise, if running from a GitHub Action, but not a tagged commit then GITHUB_RUN_NUMBER will be populated.
# Use this as a post release number, for example "0.1.1.post124".
if not version:
    build_number = os.getenv("GITHUB_RUN_NUMBER")
    version = "0.1.1.post" + build_number if build_number else "0.1.0"

# Read run_requirements.txt to get install_requires
install_requires = (here / "run_requirements.txt").read_text().split("\n")
# Remove any whitespace and blank lines
install_requires = [line.strip() for line in install_requires if line.strip()]

# Read test_requirements.txt to get the test extra
tests_require = (here / "test_requirements.txt").read_text().split("\n")
tests_require = [line.strip() for line in tests_require if line.strip()]

description = "Run automated machine learning on a remote virtual machine in AzureML"

setup(
    name="automl-dsvm",
    version=version,
    description=description,
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="Biomedical Imaging Team @ Microsoft Health Futures",
    author_email="innereyedev@microsoft.com",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
    ],
    keywords="AzureML, AutoML, Data Science VM",
    license="MIT License",
    python_requires=">=3.8",
    packages=find_namespace_packages(where="src"),
    package_dir={"": "src"},
    include_package_data=True,
    install_requires=install_requires,
    extras_require={"test": tests_require},
    entry_points={
        "console_scripts": [
            "automl-dsvm = automl_dsvm.runner:main"
        ]
    }
)
