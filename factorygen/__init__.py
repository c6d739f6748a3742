"""factorygen — discover subclasses of a base class and generate a factory module for them."""

from factorygen.loader import ModuleLoader, ModuleLoadError
from factorygen.orchestrator import FactoriesBuilder
from factorygen.registry import FactoryBuilder, Specialisation

__all__ = [
    "FactoriesBuilder",
    "FactoryBuilder",
    "ModuleLoadError",
    "ModuleLoader",
    "Specialisation",
]
