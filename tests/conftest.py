import logging
import os
from typing import Iterable, Optional, Tuple

import pytest

from src.app_config import AppConfig
from src.logging_config import LOGGER_NAME

XLIFF_NAMESPACE = "urn:oasis:names:tc:xliff:document:1.2"


def build_xliff(
        units: Iterable[Tuple[str, str, Optional[str]]],
        source_language: str = "en",
        target_language: str = "de",
        namespace: Optional[str] = XLIFF_NAMESPACE
) -> str:
    """Render (id, source_markup, target_markup_or_None) triples as an XLIFF 1.2 document."""
    unit_lines = []
    for unit_id, source, target in units:
        target_xml = f"<target>{target}</target>" if target is not None else ""
        unit_lines.append(f'      <trans-unit id="{unit_id}"><source>{source}</source>{target_xml}</trans-unit>')
    xmlns = f' xmlns="{namespace}"' if namespace else ''
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        f'<xliff{xmlns} version="1.2">\n'
        f'  <file original="App/Localizable.strings" source-language="{source_language}" '
        f'target-language="{target_language}" datatype="plaintext">\n'
        '    <body>\n'
        + '\n'.join(unit_lines) + '\n'
        '    </body>\n'
        '  </file>\n'
        '</xliff>\n'
    )


@pytest.fixture
def xliff_factory():
    return build_xliff


@pytest.fixture
def folders(tmp_path):
    """Input, output and completed folders under a temporary directory."""
    paths = {
        "input_folder": str(tmp_path / "xliff"),
        "output_folder": str(tmp_path / "output"),
        "completed_folder": str(tmp_path / "finished"),
    }
    os.makedirs(paths["input_folder"])
    return paths


@pytest.fixture
def make_config(folders):
    """Factory for an AppConfig pointing at the temporary folders; keyword arguments override fields."""
    def _make(**overrides) -> AppConfig:
        values = dict(
            project_root=os.path.dirname(folders["input_folder"]),
            input_folder=folders["input_folder"],
            output_folder=folders["output_folder"],
            completed_folder=folders["completed_folder"],
            rate_limit=60000,
            units_per_batch=5,
            max_retries=3,
            separator="<|->",
            retranslate_existing=False,
            excluded_id_prefixes=(),
            file_extensions=(".xliff", ".xlf"),
            model_name="gpt-4o-mini",
            api_base_url=None,
            temperature=0.8,
            max_tokens=8000,
            request_timeout=60.0,
            app_context="",
            language_codes={"en": "English", "de": "German"},
            openai_client=None,
        )
        values.update(overrides)
        return AppConfig(**values)
    return _make


@pytest.fixture(autouse=True)
def quiet_translator_logger():
    """Keep handlers installed by load_app_config from leaking between tests."""
    logger = logging.getLogger(LOGGER_NAME)
    saved_handlers = list(logger.handlers)
    saved_propagate = logger.propagate
    saved_level = logger.level
    yield
    for handler in logger.handlers:
        if handler not in saved_handlers:
            handler.close()
    logger.handlers = saved_handlers
    logger.propagate = saved_propagate
    logger.setLevel(saved_level)
