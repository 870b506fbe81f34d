"""
Entity catalog: resolves entity types and builds the queries run against them
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from sqlalchemy import func, inspect, select
from sqlalchemy.exc import NoInspectionAvailable, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select
from core.exceptions import PlanningError
from schemas.predicates import Predicate
import logging

logger = logging.getLogger(__name__)


class EntityCatalog:
    """
    Registry of the mapped classes to reindex.

    Responsibilities:
    - Map entity names to mapped classes
    - Resolve the single-column identifier of each entity type
    - Count rows and build ordered, range-filtered scan queries
    - Attach the entity type's filter predicates to every query it builds
    """

    def __init__(
        self,
        entity_types: Iterable[type],
        predicates: Optional[Mapping[str, Sequence[Predicate]]] = None
    ):
        self._types: Dict[str, type] = {}
        for entity_cls in entity_types:
            self._types[entity_cls.__name__] = entity_cls
        self._predicates: Dict[str, Tuple[Predicate, ...]] = {}
        for name, preds in (predicates or {}).items():
            if name not in self._types:
                raise PlanningError(
                    "Predicates given for an entity type that is not registered",
                    context={"entity_name": name, "operation": "resolve_entity"}
                )
            self._predicates[name] = tuple(preds)

    @property
    def entity_names(self) -> List[str]:
        return list(self._types)

    @property
    def entity_type_map(self) -> Dict[str, type]:
        return dict(self._types)

    @property
    def predicates(self) -> Dict[str, Tuple[Predicate, ...]]:
        return dict(self._predicates)

    def entity_type(self, entity_name: str) -> type:
        try:
            return self._types[entity_name]
        except KeyError:
            raise PlanningError(
                f"Entity type {entity_name} not found",
                context={"entity_name": entity_name, "operation": "resolve_entity"}
            ) from None

    def identifier_field(self, entity_name: str) -> str:
        """Name of the primary-key attribute; composite keys are rejected"""
        entity_cls = self.entity_type(entity_name)
        try:
            mapper = inspect(entity_cls)
        except NoInspectionAvailable as e:
            raise PlanningError(
                f"{entity_name} is not a mapped class",
                context={"entity_name": entity_name, "operation": "resolve_identifier"},
                original_exception=e
            )
        primary_key = mapper.primary_key
        if len(primary_key) != 1:
            raise PlanningError(
                f"{entity_name} must have exactly one identifier column, found {len(primary_key)}",
                context={"entity_name": entity_name, "operation": "resolve_identifier"}
            )
        return mapper.get_property_by_column(primary_key[0]).key

    def identifier_column(self, entity_name: str):
        return getattr(self.entity_type(entity_name), self.identifier_field(entity_name))

    def identifier_of(self, entity_name: str, entity: Any) -> Any:
        return getattr(entity, self.identifier_field(entity_name))

    def predicates_for(self, entity_name: str) -> Tuple[Predicate, ...]:
        return self._predicates.get(entity_name, ())

    def _filter_clauses(self, entity_name: str) -> List[Any]:
        entity_cls = self.entity_type(entity_name)
        try:
            return [p.to_clause(entity_cls) for p in self.predicates_for(entity_name)]
        except ValueError as e:
            raise PlanningError(
                f"Invalid filter predicate for {entity_name}",
                context={"entity_name": entity_name, "operation": "resolve_predicate"},
                original_exception=e
            )

    async def row_count(self, db: AsyncSession, entity_name: str) -> int:
        """Count the rows to index, predicates applied"""
        entity_cls = self.entity_type(entity_name)
        query = select(func.count()).select_from(entity_cls).where(*self._filter_clauses(entity_name))
        try:
            result = await db.execute(query)
            return int(result.scalar_one())
        except SQLAlchemyError as e:
            raise PlanningError(
                f"Row count query failed for {entity_name}",
                context={"entity_name": entity_name, "operation": "row_count"},
                original_exception=e
            )

    def ordered_scan(
        self,
        entity_name: str,
        lower_bound: Any = None,
        upper_bound: Any = None,
        ids_only: bool = False
    ) -> Select:
        """
        Ascending scan of one entity type over [lower_bound, upper_bound).

        Either bound may be None (unbounded). With ids_only the query
        projects the identifier column instead of whole entities.
        """
        entity_cls = self.entity_type(entity_name)
        id_column = self.identifier_column(entity_name)

        query = select(id_column) if ids_only else select(entity_cls)
        query = query.where(*self._filter_clauses(entity_name))
        if lower_bound is not None:
            query = query.where(id_column >= lower_bound)
        if upper_bound is not None:
            query = query.where(id_column < upper_bound)
        return query.order_by(id_column.asc())
