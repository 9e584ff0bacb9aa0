"""Migration orchestrator for applying batches of requests."""

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Union

import yaml
from loguru import logger
from pydantic import BaseModel, Field, validator

from .engine import MigrationEngine
from .exceptions import MigrationError
from .requests import MigrationRequest
from .steps import MigrationResult, MigrationStatus


class MigrationPlan(BaseModel):
    """Ordered list of requests to apply."""

    requests: List[MigrationRequest] = Field(
        default_factory=list, description='Requests to run'
    )
    max_workers: int = Field(default=1, description='Requests run concurrently')
    continue_on_error: bool = Field(
        default=False, description='Keep going after a failed request'
    )

    @validator('max_workers')
    def validate_max_workers(cls, v):
        """Validate max workers is positive."""
        if v <= 0:
            raise ValueError('Max workers must be positive')
        return v

    @classmethod
    def from_file(cls, plan_path: Union[str, Path]) -> 'MigrationPlan':
        """Load a plan from a YAML file.

        The file holds either a mapping with a ``requests`` key or a bare
        list of requests.
        """
        plan_path = Path(plan_path)
        if not plan_path.exists():
            raise FileNotFoundError(f'Plan file not found: {plan_path}')

        with open(plan_path, 'r') as f:
            data = yaml.safe_load(f) or {}

        if isinstance(data, list):
            data = {'requests': data}
        if not isinstance(data, dict):
            raise ValueError(f'Plan file must contain a mapping or a list: {plan_path}')

        return cls(**data)


class MigrationSummary(BaseModel):
    """Summary of a plan run."""

    total_requests: int = Field(..., description='Requests in the plan')
    successful: int = Field(default=0, description='Completed requests')
    partial: int = Field(default=0, description='Completed with warnings')
    failed: int = Field(default=0, description='Failed requests')
    skipped: int = Field(default=0, description='Not run after an earlier failure')

    started_at: datetime = Field(..., description='Run start time')
    completed_at: Optional[datetime] = Field(
        default=None, description='Run completion time'
    )

    results: List[MigrationResult] = Field(
        default_factory=list, description='Results in plan order'
    )

    class Config:
        """Pydantic configuration."""

        json_encoders = {datetime: lambda v: v.isoformat() if v else None}

    @property
    def success(self) -> bool:
        return self.failed == 0 and self.skipped == 0

    def counts_by_operation(self) -> Dict[str, Dict[str, int]]:
        counts: Dict[str, Dict[str, int]] = {}
        for result in self.results:
            bucket = counts.setdefault(
                result.operation.value, {status.value: 0 for status in MigrationStatus}
            )
            bucket[result.status.value] += 1
        return counts


class MigrationOrchestrator:
    """Runs the requests of a plan through a migration engine."""

    def __init__(self, engine: MigrationEngine):
        """Initialize migration orchestrator.

        Args:
            engine: Engine that runs each request
        """
        self.engine = engine
        self.logger = logger.bind(component='MigrationOrchestrator')

    async def execute_plan(self, plan: MigrationPlan) -> MigrationSummary:
        """Execute every request in the plan.

        Requests run in plan order with at most ``plan.max_workers`` in
        flight. Unless ``plan.continue_on_error`` is set, the first failure
        stops requests that have not started yet; they are reported as
        skipped.

        Args:
            plan: Plan to execute

        Returns:
            Summary with one result per request
        """
        self.logger.info(f'Applying plan with {len(plan.requests)} request(s)')
        started_at = datetime.now()

        semaphore = asyncio.Semaphore(plan.max_workers)
        stop = asyncio.Event()

        async def process(request: MigrationRequest) -> MigrationResult:
            async with semaphore:
                if stop.is_set():
                    return self._skipped_result(request)
                result = await self._run_request(request)
                if result.status == MigrationStatus.FAILED and not plan.continue_on_error:
                    stop.set()
                return result

        results = await asyncio.gather(*(process(r) for r in plan.requests))

        summary = MigrationSummary(
            total_requests=len(plan.requests),
            successful=sum(1 for r in results if r.status == MigrationStatus.COMPLETED),
            partial=sum(1 for r in results if r.status == MigrationStatus.PARTIAL),
            failed=sum(1 for r in results if r.status == MigrationStatus.FAILED),
            skipped=sum(1 for r in results if r.status == MigrationStatus.PENDING),
            started_at=started_at,
            completed_at=datetime.now(),
            results=list(results),
        )

        self.logger.info(
            f'Plan completed: {summary.successful} successful, '
            f'{summary.partial} partial, {summary.failed} failed, '
            f'{summary.skipped} skipped'
        )
        return summary

    async def _run_request(self, request: MigrationRequest) -> MigrationResult:
        self.logger.debug(f'Running {request.describe()}')
        try:
            return await self.engine.run(request)
        except MigrationError as e:
            if e.status_code > 300:
                self.logger.error(f'{request.describe()} failed: {e.message}')
            else:
                self.logger.warning(f'{request.describe()} failed: {e.message}')

            if e.result is not None:
                return e.result
            return self._failed_result(request, e.message)

    @staticmethod
    def _base_result(request: MigrationRequest) -> MigrationResult:
        if request.team_id is not None:
            entity_type, entity_id = 'team', str(request.team_id)
        else:
            entity_type = 'user'
            entity_id = request.username or str(request.user_id)
        return MigrationResult(
            operation=request.operation,
            entity_type=entity_type,
            entity_id=entity_id,
            target_org_id=request.target_org_id,
        )

    def _skipped_result(self, request: MigrationRequest) -> MigrationResult:
        result = self._base_result(request)
        result.warnings.append('Skipped after an earlier failure')
        return result

    def _failed_result(self, request: MigrationRequest, message: str) -> MigrationResult:
        result = self._base_result(request)
        result.status = MigrationStatus.FAILED
        result.error_message = message
        result.completed_at = datetime.now()
        return result
