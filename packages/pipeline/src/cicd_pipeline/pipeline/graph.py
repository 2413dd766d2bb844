"""Fixed, validated stage DAG."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from cicd_pipeline.core import CyclicGraphError, GraphDefinitionError

from .stage import Stage


class JobGraph:
    """
    Ordered collection of stages forming a DAG.

    Construction validates the graph; a JobGraph that exists is acyclic,
    every dependency names a stage of the graph, and every artifact key has
    exactly one producer that is a transitive dependency of its consumers.
    """

    __slots__ = ("_stages", "_order", "_children", "_producers", "_ancestors")

    def __init__(self, stages: Iterable[Stage]) -> None:
        self._stages: dict[str, Stage] = {}
        for st in stages:
            if st.name in self._stages:
                raise GraphDefinitionError(f"Duplicate stage name: {st.name}")
            self._stages[st.name] = st

        self._children: dict[str, set[str]] = {name: set() for name in self._stages}
        for st in self._stages.values():
            for dep in st.depends_on:
                if dep not in self._stages:
                    raise GraphDefinitionError(
                        f"Stage {st.name} depends on unknown stage {dep!r}"
                    )
                if dep == st.name:
                    raise CyclicGraphError([st.name])
                self._children[dep].add(st.name)

        self._order = self._topological_order()
        self._ancestors = self._compute_ancestors()
        self._producers = self._index_producers()

    def __iter__(self) -> Iterator[Stage]:
        return (self._stages[name] for name in self._order)

    def __len__(self) -> int:
        return len(self._stages)

    def __contains__(self, name: object) -> bool:
        return name in self._stages

    def __getitem__(self, name: str) -> Stage:
        return self._stages[name]

    @property
    def order(self) -> tuple[str, ...]:
        """Topological order; ties keep declaration order."""
        return self._order

    def _topological_order(self) -> tuple[str, ...]:
        declared = list(self._stages)
        indegree = {name: len(self._stages[name].depends_on) for name in declared}
        ready = [name for name in declared if indegree[name] == 0]

        ordered: list[str] = []
        while ready:
            name = ready.pop(0)
            ordered.append(name)
            for child in declared:
                if child in self._children[name]:
                    indegree[child] -= 1
                    if indegree[child] == 0:
                        ready.append(child)

        if len(ordered) != len(declared):
            raise CyclicGraphError([n for n in declared if indegree[n] > 0])
        return tuple(ordered)

    def _compute_ancestors(self) -> dict[str, frozenset[str]]:
        ancestors: dict[str, frozenset[str]] = {}
        for name in self._order:
            acc: set[str] = set()
            for dep in self._stages[name].depends_on:
                acc.add(dep)
                acc.update(ancestors[dep])
            ancestors[name] = frozenset(acc)
        return ancestors

    def _index_producers(self) -> dict[str, str]:
        producers: dict[str, str] = {}
        for name in self._order:
            for key in sorted(self._stages[name].produces):
                if key in producers:
                    raise GraphDefinitionError(
                        f"Artifact {key!r} has two producers: {producers[key]}, {name}"
                    )
                producers[key] = name

        for name in self._order:
            for key in sorted(self._stages[name].consumes):
                producer = producers.get(key)
                if producer is None:
                    raise GraphDefinitionError(
                        f"Stage {name} consumes {key!r} which no stage produces"
                    )
                if producer not in self._ancestors[name]:
                    raise GraphDefinitionError(
                        f"Stage {name} consumes {key!r} but does not depend on its "
                        f"producer {producer}"
                    )
        return producers

    def producer_of(self, key: str) -> str:
        return self._producers[key]

    def ancestors_of(self, name: str) -> frozenset[str]:
        return self._ancestors[name]

    def dependents_of(self, name: str) -> tuple[str, ...]:
        """Transitive dependents of `name`, in topological order."""
        return tuple(n for n in self._order if name in self._ancestors[n])

    def levels(self) -> list[tuple[str, ...]]:
        """Stages grouped by dependency depth; one level may run concurrently."""
        depth: dict[str, int] = {}
        for name in self._order:
            deps = self._stages[name].depends_on
            depth[name] = 1 + max((depth[d] for d in deps), default=-1)
        grouped: dict[int, list[str]] = {}
        for name in self._order:
            grouped.setdefault(depth[name], []).append(name)
        return [tuple(grouped[d]) for d in sorted(grouped)]
