"""Read-only whole-program index built once before rule dispatch."""

from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from .source_model import FunctionDef, ScanUnit, StructDef


class ProgramIndex:
    """
    Cross-unit symbol tables.

    Built from every unit of a scan before any rule runs and never modified
    afterwards, so concurrent rules read it without locking.
    """

    def __init__(self, units: Iterable[ScanUnit]):
        functions: Dict[str, List[Tuple[str, FunctionDef]]] = {}
        structs: Dict[str, List[Tuple[str, StructDef]]] = {}
        handlers: Dict[str, List[Tuple[str, FunctionDef]]] = {}
        paths = []

        for unit in sorted(units, key=lambda u: u.path):
            paths.append(unit.path)
            if unit.language != "rust":
                continue
            model = unit.model
            for fn in model.functions:
                functions.setdefault(fn.name, []).append((unit.path, fn))
                context = fn.context_struct
                if context:
                    handlers.setdefault(context, []).append((unit.path, fn))
            for struct in model.structs:
                structs.setdefault(struct.name, []).append((unit.path, struct))

        self._functions = MappingProxyType({k: tuple(v) for k, v in functions.items()})
        self._structs = MappingProxyType({k: tuple(v) for k, v in structs.items()})
        self._handlers = MappingProxyType({k: tuple(v) for k, v in handlers.items()})
        self._paths = tuple(paths)

    @property
    def paths(self) -> Tuple[str, ...]:
        return self._paths

    @property
    def functions(self) -> Mapping[str, Tuple[Tuple[str, FunctionDef], ...]]:
        return self._functions

    @property
    def structs(self) -> Mapping[str, Tuple[Tuple[str, StructDef], ...]]:
        return self._structs

    def find_struct(self, name: str) -> Optional[Tuple[str, StructDef]]:
        """First struct with this name, by unit path."""
        matches = self._structs.get(name)
        return matches[0] if matches else None

    def handlers_for(self, accounts_struct: str) -> Tuple[Tuple[str, FunctionDef], ...]:
        """Instruction handlers taking ``Context<accounts_struct>``."""
        return self._handlers.get(accounts_struct, ())

    def __len__(self) -> int:
        return len(self._paths)
