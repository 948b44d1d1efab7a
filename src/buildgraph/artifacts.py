# artifacts.py
from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

from .model import DefinedParam, TargetDefinition
from .params import ParamDefinition

log = logging.getLogger(__name__)

STORE_ARTIFACT_TARGET = "StoreArtifact"
RETRIEVE_ARTIFACT_TARGET = "RetrieveArtifact"

ARTIFACTS_PARAM = "artifacts"
BUILD_SLICE_PARAM = "build-slice"

ARTIFACT_PARAMS = (
    ParamDefinition(ARTIFACTS_PARAM, ARTIFACTS_PARAM, "Comma-separated artifact names"),
    ParamDefinition(BUILD_SLICE_PARAM, BUILD_SLICE_PARAM, "Matrix slice the artifacts belong to"),
)


class ArtifactProvider(Protocol):
    async def store_artifacts(
        self, names: Sequence[str], build_id: Optional[str] = None, build_slice: Optional[str] = None
    ) -> None: ...

    async def retrieve_artifacts(
        self, names: Sequence[str], build_id: Optional[str] = None, build_slice: Optional[str] = None
    ) -> None: ...

    async def cleanup(self, build_ids: Sequence[str]) -> None: ...

    async def stored_run_ids(
        self, artifact_name: Optional[str] = None, build_slice: Optional[str] = None
    ) -> List[str]: ...


def _replace(src: Path, dst: Path) -> None:
    if dst.is_dir():
        shutil.rmtree(dst)
    elif dst.exists():
        dst.unlink()
    dst.parent.mkdir(parents=True, exist_ok=True)
    if src.is_dir():
        shutil.copytree(src, dst)
    else:
        shutil.copy2(src, dst)


class FileArtifactProvider:
    """
    Artifact store on the local (or a mounted) filesystem.

    Layout: <store_root>/<build_id>/[<slice>/]<artifact name>
    Targets write outputs to publish_dir/<name>; retrieved artifacts land
    in artifacts_dir/<name>.
    """

    def __init__(
        self,
        store_root: str | Path,
        publish_dir: str | Path,
        artifacts_dir: str | Path,
        build_id: Optional[str] = None,
    ):
        self.store_root = Path(store_root)
        self.publish_dir = Path(publish_dir)
        self.artifacts_dir = Path(artifacts_dir)
        self.build_id = build_id

    def _run_dir(self, build_id: Optional[str], build_slice: Optional[str]) -> Path:
        bid = build_id or self.build_id
        if not bid:
            raise ValueError("A build id is required to locate stored artifacts")
        base = self.store_root / bid
        return base / build_slice if build_slice else base

    async def store_artifacts(
        self, names: Sequence[str], build_id: Optional[str] = None, build_slice: Optional[str] = None
    ) -> None:
        run_dir = self._run_dir(build_id, build_slice)
        for name in names:
            src = self.publish_dir / name
            if not src.exists():
                raise FileNotFoundError(f"Artifact '{name}' not found at {src}")
            log.info("storing artifact %s -> %s", name, run_dir / name)
            await asyncio.to_thread(_replace, src, run_dir / name)

    async def retrieve_artifacts(
        self, names: Sequence[str], build_id: Optional[str] = None, build_slice: Optional[str] = None
    ) -> None:
        run_dir = self._run_dir(build_id, build_slice)
        for name in names:
            src = run_dir / name
            if not src.exists():
                raise FileNotFoundError(f"Artifact '{name}' was not stored for this build ({src})")
            log.info("retrieving artifact %s -> %s", name, self.artifacts_dir / name)
            await asyncio.to_thread(_replace, src, self.artifacts_dir / name)

    async def cleanup(self, build_ids: Sequence[str]) -> None:
        for bid in build_ids:
            path = self.store_root / bid
            if path.exists():
                log.info("removing stored artifacts of build %s", bid)
                await asyncio.to_thread(shutil.rmtree, path)

    async def stored_run_ids(
        self, artifact_name: Optional[str] = None, build_slice: Optional[str] = None
    ) -> List[str]:
        if not self.store_root.exists():
            return []
        ids = []
        for run_dir in sorted(p for p in self.store_root.iterdir() if p.is_dir()):
            where = run_dir / build_slice if build_slice else run_dir
            if artifact_name is None or (where / artifact_name).exists():
                ids.append(run_dir.name)
        return ids


# ----------------------------------------------------------------------
# Built-in targets run by generated custom-provider steps
# ----------------------------------------------------------------------

def _names(raw: Optional[str]) -> List[str]:
    return [n.strip() for n in (raw or "").split(",") if n.strip()]


def artifact_targets(provider: Optional[ArtifactProvider] = None) -> List[TargetDefinition]:
    """
    StoreArtifact and RetrieveArtifact. Without an explicit provider the
    run's provider (TaskContext.artifacts) is used.
    """
    def resolve(ctx) -> ArtifactProvider:
        found = provider or ctx.artifacts
        if found is None:
            raise RuntimeError("No artifact provider is configured")
        return found

    async def store(ctx) -> None:
        await resolve(ctx).store_artifacts(
            _names(ctx.get_param(ARTIFACTS_PARAM)),
            ctx.build_id,
            ctx.get_param(BUILD_SLICE_PARAM) or None,
        )

    async def retrieve(ctx) -> None:
        await resolve(ctx).retrieve_artifacts(
            _names(ctx.get_param(ARTIFACTS_PARAM)),
            ctx.build_id,
            ctx.get_param(BUILD_SLICE_PARAM) or None,
        )

    params = (DefinedParam(ARTIFACTS_PARAM, True), DefinedParam(BUILD_SLICE_PARAM, False))
    return [
        TargetDefinition(
            name=STORE_ARTIFACT_TARGET,
            description="Store published artifacts with the artifact provider",
            hidden=True,
            tasks=(store,),
            params=params,
        ),
        TargetDefinition(
            name=RETRIEVE_ARTIFACT_TARGET,
            description="Retrieve artifacts from the artifact provider",
            hidden=True,
            tasks=(retrieve,),
            params=params,
        ),
    ]
