"""Application configuration module for the XLIFF translator."""
import logging
import os
import sys
from dataclasses import dataclass
from typing import Dict, List, Optional, Any, Tuple

import jsonschema
import yaml
from dotenv import load_dotenv
from openai import AsyncOpenAI

from src.batch_translator import DEFAULT_SEPARATOR
from src.logging_config import setup_logger

DEFAULT_FILE_EXTENSIONS = ['.xliff', '.xlf']

# Shape of config.yaml. Unknown keys are tolerated so old files keep working.
CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "input_folder": {"type": "string"},
        "output_folder": {"type": "string"},
        "completed_folder": {"type": "string"},
        "rate_limit": {"type": "number", "exclusiveMinimum": 0},
        "units_per_batch": {"type": "integer", "minimum": 1},
        "max_retries": {"type": "integer", "minimum": 0},
        "retranslate_existing": {"type": "boolean"},
        "excluded_id_prefixes": {"type": "array", "items": {"type": "string"}},
        "separator": {"type": "string", "minLength": 1},
        "file_extensions": {"type": "array", "items": {"type": "string"}, "minItems": 1},
        "model_name": {"type": "string"},
        "api_base_url": {"type": ["string", "null"]},
        "temperature": {"type": "number", "minimum": 0},
        "max_tokens": {"type": "integer", "minimum": 1},
        "request_timeout": {"type": "number", "exclusiveMinimum": 0},
        "app_context": {"type": "string"},
        "supported_locales": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {"code": {"type": "string"}, "name": {"type": "string"}},
                "required": ["code", "name"]
            }
        },
        "logging": {
            "type": "object",
            "properties": {
                "log_level": {"type": "string"},
                "log_file_path": {"type": "string"},
                "log_to_console": {"type": "boolean"}
            }
        }
    }
}


@dataclass(frozen=True)
class AppConfig:
    """Run configuration. Loaded once at start-up and never modified."""
    # Core paths
    project_root: str
    input_folder: str
    output_folder: str
    completed_folder: str

    # Batching and pacing
    rate_limit: float
    units_per_batch: int
    max_retries: int
    separator: str

    # Unit selection
    retranslate_existing: bool
    excluded_id_prefixes: Tuple[str, ...]
    file_extensions: Tuple[str, ...]

    # Model configuration
    model_name: str
    api_base_url: Optional[str]
    temperature: float
    max_tokens: int
    request_timeout: float
    app_context: str

    # Language configuration
    language_codes: Dict[str, str]

    # OpenAI client
    openai_client: Optional[AsyncOpenAI]


def _compute_project_root() -> str:
    """Compute the project root directory."""
    script_real_path = os.path.realpath(__file__)
    script_dir = os.path.dirname(script_real_path)
    return os.path.abspath(os.path.join(script_dir, os.pardir))


def _load_dotenv_files(project_root: str) -> None:
    """Load .env files from project root or docker directory."""
    dotenv_path_project_root = os.path.join(project_root, '.env')
    dotenv_path_docker_dir = os.path.join(project_root, 'docker', '.env')

    if os.path.exists(dotenv_path_project_root):
        load_dotenv(dotenv_path_project_root)
    elif os.path.exists(dotenv_path_docker_dir):
        load_dotenv(dotenv_path_docker_dir)


def _load_yaml_config(project_root: str) -> Dict[str, Any]:
    """Load the YAML configuration file, falling back to an empty mapping on any problem."""
    default_config_path = os.path.join(project_root, 'config.yaml')
    config_file = os.environ.get('TRANSLATOR_CONFIG_FILE', default_config_path)

    if not os.path.isabs(config_file):
        config_file = os.path.abspath(config_file)

    config = {}
    try:
        if not os.path.exists(config_file):
            print(f"Warning: Configuration file '{config_file}' not found. Using default configuration.",
                  file=sys.stderr)
            print(f"Tip: Create a config.yaml file in '{project_root}' or set TRANSLATOR_CONFIG_FILE environment variable.",
                  file=sys.stderr)
            return config

        if not os.access(config_file, os.R_OK):
            print(f"Error: Configuration file '{config_file}' exists but is not readable. Check file permissions.",
                  file=sys.stderr)
            return config

        with open(config_file, 'r', encoding='utf-8') as config_file_stream:
            loaded_config = yaml.safe_load(config_file_stream)
            if loaded_config is None:
                print(f"Warning: Configuration file '{config_file}' is empty. Using default configuration.",
                      file=sys.stderr)
            elif isinstance(loaded_config, dict):
                config = loaded_config
                print(f"Successfully loaded configuration from: {config_file}", file=sys.stderr)
            else:
                print(f"Error: Configuration file '{config_file}' must contain a YAML dictionary. Using defaults.",
                      file=sys.stderr)

    except yaml.YAMLError as e:
        print(f"Error: Invalid YAML in configuration file '{config_file}': {e}", file=sys.stderr)
        print("Please check your YAML syntax. Using default configuration.", file=sys.stderr)
    except (OSError, IOError) as e:
        print(f"Error: Could not read configuration file '{config_file}': {e}", file=sys.stderr)
        print("Using default configuration.", file=sys.stderr)

    return config


def _setup_logger_from_config(config: Dict[str, Any]) -> logging.Logger:
    """Set up logger based on configuration."""
    log_config = config.get('logging', {})
    log_level_str = log_config.get('log_level', 'INFO').upper()
    log_file_path = log_config.get('log_file_path', 'logs/translation_log.log')
    log_to_console = log_config.get('log_to_console', True)
    return setup_logger(log_level_str, log_file_path, log_to_console)


def _log_dotenv_status(logger: logging.Logger, project_root: str) -> None:
    """Log the status of .env file loading."""
    dotenv_path_project_root = os.path.join(project_root, '.env')
    dotenv_path_docker_dir = os.path.join(project_root, 'docker', '.env')

    if os.path.exists(dotenv_path_project_root):
        logger.info("Loaded environment variables from: %s", dotenv_path_project_root)
    elif os.path.exists(dotenv_path_docker_dir):
        logger.info("Loaded environment variables from: %s", dotenv_path_docker_dir)
    else:
        logger.info(
            "No .env file found in project root ('%s') or in docker/ ('%s'). Relying on system environment variables if any.",
            dotenv_path_project_root,
            dotenv_path_docker_dir
        )


def _validate_config(config: Dict[str, Any], logger: logging.Logger) -> None:
    """Exit if the configuration does not match CONFIG_SCHEMA."""
    try:
        jsonschema.validate(instance=config, schema=CONFIG_SCHEMA)
    except jsonschema.ValidationError as schema_exc:
        location = '.'.join(str(part) for part in schema_exc.absolute_path) or '<root>'
        logger.critical("CRITICAL: Invalid configuration value at '%s': %s", location, schema_exc.message)
        sys.exit(1)


def _build_language_mappings(locales_list: List[Dict[str, str]]) -> Dict[str, str]:
    """Build the language code to name mapping from supported locales."""
    language_codes: Dict[str, str] = {}
    for locale in locales_list:
        code = locale.get('code')
        name = locale.get('name')
        if code and name:
            language_codes[code] = name
    return language_codes


def language_code_to_name(language_code: str, language_codes: Dict[str, str]) -> str:
    """
    Convert a language code to a language name.

    Args:
        language_code (str): The language code (e.g., "de").
        language_codes (Dict[str, str]): Known code to name mappings.

    Returns:
        str: The language name if known, else the code itself.
    """
    return language_codes.get(language_code, language_code)


def _create_openai_client(api_base_url: Optional[str], logger: logging.Logger) -> AsyncOpenAI:
    """Create the OpenAI client, exiting if no API key is configured."""
    api_key_from_env = os.environ.get('OPENAI_API_KEY')
    if not api_key_from_env:
        logger.critical("CRITICAL: OPENAI_API_KEY environment variable not found.")
        logger.critical("Please set OPENAI_API_KEY in your environment or in a .env file.")
        sys.exit(1)

    try:
        if api_base_url:
            client = AsyncOpenAI(api_key=api_key_from_env, base_url=api_base_url)
            logger.info("OpenAI client initialized for endpoint %s", api_base_url)
        else:
            client = AsyncOpenAI(api_key=api_key_from_env)
            logger.info("OpenAI client initialized successfully")
        return client
    except Exception as e:
        logger.critical("Failed to initialize OpenAI client: %s", str(e))
        logger.critical("Please check your OPENAI_API_KEY and api_base_url.")
        sys.exit(1)


def load_app_config() -> AppConfig:
    """
    Load application configuration from YAML file and environment variables.

    Returns:
        AppConfig: The loaded application configuration.
    """
    project_root = _compute_project_root()

    _load_dotenv_files(project_root)

    config = _load_yaml_config(project_root)

    logger = _setup_logger_from_config(config)

    _log_dotenv_status(logger, project_root)

    _validate_config(config, logger)

    language_codes = _build_language_mappings(config.get('supported_locales', []))

    model_name = os.environ.get('OPENAI_MODEL', config.get('model_name', 'gpt-4o-mini'))

    default_units_per_batch = config.get('units_per_batch', 5)
    units_per_batch = int(os.environ.get('UNITS_PER_BATCH', default_units_per_batch))
    if units_per_batch < 1:
        logger.critical("CRITICAL: UNITS_PER_BATCH must be at least 1, got %s.", units_per_batch)
        sys.exit(1)

    api_base_url = config.get('api_base_url')
    openai_client = _create_openai_client(api_base_url, logger)

    return AppConfig(
        project_root=project_root,
        input_folder=os.path.abspath(config.get('input_folder', 'xliff')),
        output_folder=os.path.abspath(config.get('output_folder', 'output')),
        completed_folder=os.path.abspath(config.get('completed_folder', 'finished')),
        rate_limit=config.get('rate_limit', 3),
        units_per_batch=units_per_batch,
        max_retries=config.get('max_retries', 3),
        separator=config.get('separator', DEFAULT_SEPARATOR),
        retranslate_existing=config.get('retranslate_existing', False),
        excluded_id_prefixes=tuple(config.get('excluded_id_prefixes', [])),
        file_extensions=tuple(config.get('file_extensions', DEFAULT_FILE_EXTENSIONS)),
        model_name=model_name,
        api_base_url=api_base_url,
        temperature=config.get('temperature', 0.8),
        max_tokens=config.get('max_tokens', 8000),
        request_timeout=config.get('request_timeout', 60.0),
        app_context=config.get('app_context', ''),
        language_codes=language_codes,
        openai_client=openai_client
    )
