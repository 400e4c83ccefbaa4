from setuptools import setup

with open("requirements.txt") as f:
    required = f.read().splitlines()

exec(open("pymshift/version.py").read())
setup(
    name="pymshift",
    version=__version__,  # noqa: F821
    description="Python toolbox for mean shift density estimation and clustering",
    author=["Ziwei Huang", "Philipp Berens"],
    author_email="huang-ziwei@outlook.com",
    install_requires=required,
    extras_require={"test": ["pytest"]},
    packages=["pymshift"],
    python_requires=">=3.9",
)
