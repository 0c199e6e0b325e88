"""
Metadata model definitions for axbuild.

These dataclasses describe the modules (X++ packages) and models found in a
Dynamics 365 F&O metadata store. They are created once by a metadata provider
and stay immutable for the rest of the run.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Iterable, List, Optional, Tuple


class Layer(IntEnum):
    """Model layers, lowest first, as numbered in model descriptors."""

    SYS = 0
    SYP = 1
    GLS = 2
    GLP = 3
    FPK = 4
    FPP = 5
    SLN = 6
    SLP = 7
    ISV = 8
    ISP = 9
    VAR = 10
    VAP = 11
    CUS = 12
    CUP = 13
    USR = 14
    USP = 15

    @property
    def is_custom(self) -> bool:
        return self >= Layer.ISV

    @classmethod
    def parse(cls, value: str | int) -> "Layer":
        if isinstance(value, int):
            return cls(value)
        text = value.strip()
        if text.isdigit():
            return cls(int(text))
        try:
            return cls[text.upper()]
        except KeyError:
            raise ValueError(f"Unknown layer '{value}'") from None


def module_key(name: str) -> str:
    """Module and model names compare case-insensitively."""

    return name.strip().casefold()


@dataclass(frozen=True, slots=True)
class ModelVersion:
    major: int = 1
    minor: int = 0
    build: int = 0
    revision: int = 0

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.build}.{self.revision}"

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return (self.major, self.minor, self.build, self.revision)

    @classmethod
    def parse(cls, text: str) -> "ModelVersion":
        parts = [part for part in text.strip().split(".") if part != ""]
        if not parts or len(parts) > 4:
            raise ValueError(f"Invalid version '{text}'")
        numbers = [int(part) for part in parts] + [0] * (4 - len(parts))
        return cls(*numbers)


@dataclass(frozen=True, slots=True)
class ModelInfo:
    """
    A model as declared by its descriptor XML.

    `module` is the name of the owning module (`ModelModule` in the
    descriptor); `module_references` lists the modules this model needs.
    """

    name: str
    module: str
    layer: Layer
    version: ModelVersion = ModelVersion()
    display_name: Optional[str] = None
    publisher: Optional[str] = None
    description: Optional[str] = None
    module_references: Tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ModuleInfo:
    """A module (X++ package) together with the models it owns."""

    name: str
    layer: Layer
    references: Tuple[str, ...]
    models: Tuple[ModelInfo, ...]
    is_runtime: bool = False

    @property
    def model_names(self) -> Tuple[str, ...]:
        return tuple(model.name for model in self.models)

    @property
    def primary_model(self) -> ModelInfo:
        """The model named after the module, otherwise the first one."""

        for model in self.models:
            if module_key(model.name) == module_key(self.name):
                return model
        return self.models[0]

    @property
    def version(self) -> ModelVersion:
        return self.primary_model.version


def group_models(
    models: Iterable[ModelInfo],
    runtime_modules: Iterable[str] = (),
) -> List[ModuleInfo]:
    """
    Group model infos into modules, preserving first-seen module order.

    A module's references are the union of its models' references, minus the
    module itself. Its layer is the lowest layer among its models.
    """

    runtime_keys = {module_key(name) for name in runtime_modules}
    grouped: Dict[str, List[ModelInfo]] = {}
    names: Dict[str, str] = {}
    for model in models:
        key = module_key(model.module)
        grouped.setdefault(key, []).append(model)
        names.setdefault(key, model.module)

    modules: List[ModuleInfo] = []
    for key, module_models in grouped.items():
        references: Dict[str, str] = {}
        for model in module_models:
            for reference in model.module_references:
                ref_key = module_key(reference)
                if ref_key != key:
                    references.setdefault(ref_key, reference)
        modules.append(
            ModuleInfo(
                name=names[key],
                layer=min(model.layer for model in module_models),
                references=tuple(references.values()),
                models=tuple(module_models),
                is_runtime=key in runtime_keys,
            )
        )
    return modules


def index_modules(modules: Iterable[ModuleInfo]) -> Dict[str, ModuleInfo]:
    return {module_key(module.name): module for module in modules}
