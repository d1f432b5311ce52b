"""
One generation run: read the app name, generate every slot, then point the manifest
at whatever was produced. Manifest sync is best-effort; the images are the deliverable.
"""
from __future__ import annotations

import logging
from typing import Mapping, Sequence

from miniapp_assets.services.assets.models import RunResult
from miniapp_assets.services.assets.pipeline import AssetPipeline
from miniapp_assets.services.assets.slots import SlotPlan, build_requests
from miniapp_assets.services.image_generation.base import GenerationRequest, Slot
from miniapp_assets.services.manifest.service import ManifestSynchronizer, build_slot_updates

logger = logging.getLogger(__name__)


class AssetGenerationService:
    def __init__(
        self,
        pipeline: AssetPipeline,
        synchronizer: ManifestSynchronizer,
        manifest_path: str,
        app_domain: str,
        images_url_path: str = "images",
        default_app_name: str = "Mini App",
    ) -> None:
        self.pipeline = pipeline
        self.synchronizer = synchronizer
        self.manifest_path = manifest_path
        self.app_domain = app_domain
        self.images_url_path = images_url_path
        self.default_app_name = default_app_name

    def prepare_requests(self, plans: Mapping[Slot, SlotPlan]) -> list[GenerationRequest]:
        app_name = self.synchronizer.read_app_name(self.manifest_path, self.default_app_name)
        logger.info("Generating assets for %s", app_name)
        return build_requests(plans, app_name, self.app_domain)

    def run_plans(self, plans: Mapping[Slot, SlotPlan], inter_call_delay: float) -> RunResult:
        return self.run(self.prepare_requests(plans), inter_call_delay)

    def run(self, requests: Sequence[GenerationRequest], inter_call_delay: float) -> RunResult:
        result = self.pipeline.run(requests, inter_call_delay)

        filenames = {slot: artifact.filename for slot, artifact in result.artifacts.items()}
        if not filenames:
            logger.warning("No assets generated, manifest left unchanged")
            return result
        if not self.app_domain:
            logger.warning("App domain not set, manifest left unchanged")
            return result

        updates = build_slot_updates(self.app_domain, filenames, self.images_url_path)
        result.config_updated = self.synchronizer.apply(self.manifest_path, updates)
        return result
