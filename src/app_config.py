"""Application configuration module for the translation reconciler."""
import logging
import os
import sys
from dataclasses import dataclass
from typing import Dict, List, Optional, Any

import yaml
from dotenv import load_dotenv

from src.author_classifier import DEFAULT_AUTOMATED_AUTHOR_PATTERNS
from src.logging_config import setup_logger

DEFAULT_TRANSLATIONS_REPO_URL = "https://github.com/program-sam/Project-Rebearth-Translation.git"

_TRUTHY = {'1', 'true', 'yes', 'on'}


@dataclass
class AppConfig:
    """Application configuration dataclass."""
    # Core paths
    project_root: str
    target_project_root: str
    locales_dir: str

    # Documents
    reference_locale: str
    document_extension: str
    json_indent: int

    # Revision history
    translations_remote: str
    translations_repo_url: str
    primary_branch: str
    proposal_ref_pattern: str
    fetch_proposals: bool
    automated_author_patterns: List[str]

    # Processing settings
    dry_run: bool
    verbose: bool
    max_concurrent_fetches: int
    fetch_rate_limit: int
    fetch_rate_period: float
    git_timeout_seconds: float
    git_max_retries: int

    # Reports
    report_file_path: Optional[str]
    report_json_path: Optional[str]

    @property
    def primary_ref(self) -> str:
        return f"{self.translations_remote}/{self.primary_branch}"

    @property
    def reference_file_name(self) -> str:
        return f"{self.reference_locale}{self.document_extension}"


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


def _load_yaml_config(project_root: str, config_file: Optional[str] = None) -> Dict[str, Any]:
    """Load the YAML configuration file; any problem falls back to defaults."""
    default_config_path = os.path.join(project_root, 'config.yaml')
    if config_file is None:
        config_file = os.environ.get('RECONCILER_CONFIG_FILE', default_config_path)

    if not os.path.isabs(config_file):
        config_file = os.path.abspath(config_file)

    config = {}
    try:
        if not os.path.exists(config_file):
            print(f"Warning: Configuration file '{config_file}' not found. Using default configuration.",
                  file=sys.stderr)
            print(f"Tip: Create a config.yaml file in '{project_root}' or set RECONCILER_CONFIG_FILE.",
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
    except OSError as e:
        print(f"Error: Could not read configuration file '{config_file}': {e}", file=sys.stderr)
        print("Using default configuration.", file=sys.stderr)

    return config


def _setup_logger_from_config(config: Dict[str, Any]) -> logging.Logger:
    """Set up logger based on configuration."""
    log_config = config.get('logging', {}) or {}
    log_level_str = log_config.get('log_level', 'INFO').upper()
    log_file_path = log_config.get('log_file_path', 'logs/restore_log.log')
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
        logger.debug(
            "No .env file found in project root ('%s') or in docker/ ('%s').",
            dotenv_path_project_root,
            dotenv_path_docker_dir
        )


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


def load_app_config(config_file: Optional[str] = None) -> AppConfig:
    """
    Load application configuration from YAML file and environment variables.

    Args:
        config_file: Explicit YAML path; otherwise RECONCILER_CONFIG_FILE or
            config.yaml in the project root.

    Returns:
        AppConfig: The loaded application configuration.
    """
    project_root = _compute_project_root()

    _load_dotenv_files(project_root)

    config = _load_yaml_config(project_root, config_file)

    logger = _setup_logger_from_config(config)

    _log_dotenv_status(logger, project_root)

    target_project_root = os.environ.get('RECONCILER_TARGET_ROOT', config.get('target_project_root', '.'))
    target_project_root = os.path.abspath(target_project_root)

    locales_dir = config.get('locales_dir', os.path.join('src', 'i18n', 'locales'))
    if not os.path.isabs(locales_dir):
        locales_dir = os.path.join(target_project_root, locales_dir)

    # A run only writes when explicitly asked to.
    dry_run = not _env_flag('RECONCILER_APPLY', not config.get('dry_run', True))

    default_concurrency = config.get('max_concurrent_fetches', 8)
    max_concurrent_fetches = int(os.environ.get('RECONCILER_MAX_CONCURRENT_FETCHES', default_concurrency))

    patterns = config.get('automated_author_patterns') or list(DEFAULT_AUTOMATED_AUTHOR_PATTERNS)

    return AppConfig(
        project_root=project_root,
        target_project_root=target_project_root,
        locales_dir=locales_dir,
        reference_locale=config.get('reference_locale', 'en'),
        document_extension=config.get('document_extension', '.json'),
        json_indent=config.get('json_indent', 4),
        translations_remote=config.get('translations_remote', 'translations'),
        translations_repo_url=config.get('translations_repo_url', DEFAULT_TRANSLATIONS_REPO_URL),
        primary_branch=config.get('primary_branch', 'main'),
        proposal_ref_pattern=config.get('proposal_ref_pattern', 'pr/*'),
        fetch_proposals=config.get('fetch_proposals', True),
        automated_author_patterns=[str(p) for p in patterns],
        dry_run=dry_run,
        verbose=config.get('verbose', False),
        max_concurrent_fetches=max(1, max_concurrent_fetches),
        fetch_rate_limit=config.get('fetch_rate_limit', 200),
        fetch_rate_period=config.get('fetch_rate_period', 1.0),
        git_timeout_seconds=config.get('git_timeout_seconds', 60),
        git_max_retries=config.get('git_max_retries', 3),
        report_file_path=config.get('report_file_path', os.path.join(project_root, 'logs', 'restore_report.md')),
        report_json_path=config.get('report_json_path')
    )
