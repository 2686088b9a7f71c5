"""
Query executor.

Combines caller conditions, filters and authorization conditions into one
cast condition tree, issues a single read against the entity's store, and
attaches the planned relation tree to every result.
"""
import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from crudgraph.config import CrudGraphSettings
from crudgraph.context import CallerContext
from crudgraph.query.conditions import Conditions, and_all, merge_conditions, parse_sort, root_projection
from crudgraph.query.planner import RelationPlanner, required_root_fields
from crudgraph.registry import EntityHandle, EntityRegistry
from crudgraph.storage.base import Document
from crudgraph.storage.populate import DocumentPopulator


class QueryOptions(BaseModel):
    """Pagination, ordering and field selection of a read."""
    sort: List[str] = Field(default_factory=list, description='Fields to sort on, "-field" for descending')
    skip: Optional[int] = Field(default=None, ge=0)
    limit: Optional[int] = Field(default=None, ge=0)
    select: List[str] = Field(
        default_factory=list,
        description='Fields to return; "relation.field" selects on a populated relation'
    )


class FindRequest(BaseModel):
    """
    Everything a read needs besides its conditions.

    `populate=None` leaves relations as raw references, `populate=[]`
    populates every relation the entity declares.
    """
    filters: Conditions = Field(default_factory=dict)
    options: QueryOptions = Field(default_factory=QueryOptions)
    populate: Optional[List[str]] = None
    context: Optional[CallerContext] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)


class QueryExecutor:
    """Runs reads for one registered entity type."""
    _logger = logging.getLogger("QueryExecutor")

    def __init__(
        self,
        registry: EntityRegistry,
        handle: EntityHandle,
        settings: Optional[CrudGraphSettings] = None,
    ) -> None:
        self.registry = registry
        self.handle = handle
        self.type_name = handle.descriptor.type_name
        self.settings = settings or CrudGraphSettings()
        self.planner = RelationPlanner(registry, self.type_name)
        self.populator = DocumentPopulator(registry)

    async def build_conditions(
        self,
        conditions: Optional[Conditions] = None,
        filters: Optional[Conditions] = None,
        context: Optional[CallerContext] = None,
    ) -> Conditions:
        """Caller conditions AND filters AND the entity's authorization conditions, cast."""
        authorization = await self.handle.authorize(context)
        merged = merge_conditions(conditions, filters, and_all(authorization))
        return self.handle.cast(merged)

    async def find(self, conditions: Optional[Conditions] = None, request: Optional[FindRequest] = None) -> List[Document]:
        request = request or FindRequest()
        context = request.context
        options = request.options
        merged = await self.build_conditions(conditions, request.filters, context)
        if self._logger.isEnabledFor(logging.DEBUG):
            self._logger.debug(f"{self.type_name}.find {describe_request(request)}")

        if context is not None and context.reports_total_count:
            await self._report_total_count(merged, context)

        projection = root_projection(options.select)
        sort = parse_sort(options.sort)

        nodes = []
        if request.populate is not None:
            nodes = await self.planner.plan(request.populate, options.select, context)
            if projection:
                for field in required_root_fields(nodes, self.registry, self.type_name):
                    projection.setdefault(field, 1)

        documents = await self.handle.store.find(
            merged,
            skip=options.skip,
            limit=options.limit,
            sort=sort or None,
            projection=projection or None,
        )
        self._logger.info(f"{self.type_name}.find returned {len(documents)} document(s)")

        if not nodes:
            return documents
        return await self.populator.populate_many(documents, nodes, self.type_name)

    async def find_one(self, conditions: Optional[Conditions] = None, request: Optional[FindRequest] = None) -> Optional[Document]:
        request = request or FindRequest()
        options = request.options.model_copy(update={"limit": 1})
        found = await self.find(conditions, request.model_copy(update={"options": options}))
        return found[0] if found else None

    async def count_documents(
        self,
        conditions: Optional[Conditions] = None,
        filters: Optional[Conditions] = None,
        context: Optional[CallerContext] = None,
    ) -> int:
        merged = await self.build_conditions(conditions, filters, context)
        return await self.handle.store.count_documents(merged)

    async def distinct(self, field: str, conditions: Optional[Conditions] = None, request: Optional[FindRequest] = None) -> List[Any]:
        request = request or FindRequest()
        merged = await self.build_conditions(conditions, request.filters, request.context)
        return await self.handle.store.distinct(field, merged)

    async def _report_total_count(self, conditions: Conditions, context: CallerContext) -> None:
        """Store the number of matches without skip/limit in a response header."""
        total = await self.handle.store.count_documents(conditions)
        response = context.response
        count_header = self.settings.total_count_header
        expose_header = self.settings.expose_headers_header

        response.set_header(count_header, str(total))
        exposed = [h.strip() for h in (response.get_header(expose_header) or "").split(",") if h.strip()]
        if count_header not in exposed:
            exposed.insert(0, count_header)
        response.set_header(expose_header, ", ".join(exposed))
        self._logger.debug(f"{self.type_name}: {count_header}={total}")


def describe_request(request: FindRequest) -> Dict[str, Any]:
    """Loggable summary of a request without the caller context."""
    return request.model_dump(exclude={"context"})
