"""Explicit wiring of the store, image assets and content provider."""
from dataclasses import dataclass
from typing import Optional

from vocab_curator.assets import AssetManager, ImageAssets
from vocab_curator.config import Settings
from vocab_curator.provider import ContentProvider, OpenAIContentProvider, PromptTemplates
from vocab_curator.store import BackupMode, RecordStore


@dataclass
class Services:
    store: RecordStore
    assets: AssetManager
    provider: ContentProvider
    settings: Optional[Settings] = None


def build_services(settings: Settings) -> Services:
    store = RecordStore(
        settings.data_file,
        backup_directory=settings.backup_directory,
        backup_mode=BackupMode(settings.backup_mode),
        max_backup_files=settings.max_backup_files,
    )
    assets = ImageAssets(
        settings.final_image_directory,
        settings.staging_directory,
        final_pattern=settings.final_image_pattern,
        staging_pattern=settings.staging_image_pattern,
    )
    provider = OpenAIContentProvider(
        api_key=settings.openai.api_key,
        base_url=settings.openai.base_url,
        chat_model=settings.openai.chat_model,
        image_model=settings.openai.image_model,
        timeout=settings.openai.timeout,
        templates=PromptTemplates(settings.explanation_prompt_file, settings.image_prompt_file),
    )
    return Services(store=store, assets=assets, provider=provider, settings=settings)
