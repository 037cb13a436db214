"""
Configuration manager for MCQ Quiz Bot settings and parameters.
"""
import logging
from typing import Any, Dict, Optional
from pathlib import Path

from .models import MAX_USER_NAME_LENGTH, QuizSettings


class ConfigManager:
    """Manages quiz configuration settings."""

    # Default configuration values
    DEFAULT_QUIZ_DIRECTORY = "./quizzes/"
    DEFAULT_HISTORY_FILE = "./data/quiz_attempts.json"
    DEFAULT_HISTORY_LIMIT = 10
    DEFAULT_TIME_LIMIT = 30
    DEFAULT_USER_NAME = "Anonymous"
    DEFAULT_TICK_INTERVAL = 1.0

    # Validation limits
    MIN_TIME_LIMIT = 5
    MAX_TIME_LIMIT = 300  # 5 minutes
    MIN_HISTORY_LIMIT = 1
    MAX_HISTORY_LIMIT = 100
    MIN_TICK_INTERVAL = 0.1
    MAX_TICK_INTERVAL = 5.0
    MAX_USER_NAME_LENGTH = MAX_USER_NAME_LENGTH

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self._settings = QuizSettings(
            default_time_limit=self.DEFAULT_TIME_LIMIT,
            history_limit=self.DEFAULT_HISTORY_LIMIT,
            default_user_name=self.DEFAULT_USER_NAME,
            tick_interval=self.DEFAULT_TICK_INTERVAL,
            history_file=self.DEFAULT_HISTORY_FILE
        )
        self._quiz_directory = self.DEFAULT_QUIZ_DIRECTORY

    def get_quiz_settings(self) -> QuizSettings:
        """
        Get current quiz settings.

        Returns:
            Copy of the current QuizSettings
        """
        return QuizSettings(
            default_time_limit=self._settings.default_time_limit,
            history_limit=self._settings.history_limit,
            default_user_name=self._settings.default_user_name,
            tick_interval=self._settings.tick_interval,
            history_file=self._settings.history_file
        )

    def apply_config(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply the 'quiz' section of a loaded config.json.

        Invalid values are reported and leave the defaults in place.

        Args:
            config: Parsed configuration dictionary

        Returns:
            Dictionary with success status and the list of rejected settings
        """
        quiz_config = (config or {}).get('quiz', {})
        rejected = []

        appliers = (
            ('quiz_directory', self.set_quiz_directory),
            ('history_file', self.set_history_file),
            ('history_limit', self.set_history_limit),
            ('default_time_limit', self.set_default_time_limit),
            ('default_user_name', self.set_default_user_name),
            ('tick_interval', self.set_tick_interval),
        )
        for key, setter in appliers:
            if key not in quiz_config:
                continue
            result = setter(quiz_config[key])
            if not result['success']:
                rejected.append(f"{key}: {result['error']}")

        if rejected:
            self.logger.warning(f"Rejected {len(rejected)} configuration values: {rejected}")
        else:
            self.logger.info("Configuration applied successfully")

        return {'success': not rejected, 'rejected': rejected}

    def set_default_time_limit(self, seconds: int) -> Dict[str, Any]:
        """
        Set the time limit used for questions that do not define one.

        Args:
            seconds: Time limit in seconds

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if isinstance(seconds, bool) or not isinstance(seconds, int):
            error_msg = f"Time limit must be an integer, got {type(seconds).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(seconds).__name__}"
            }

        if seconds < self.MIN_TIME_LIMIT:
            error_msg = f"Time limit must be at least {self.MIN_TIME_LIMIT} seconds"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Timer too short: Minimum is {self.MIN_TIME_LIMIT} seconds"
            }

        if seconds > self.MAX_TIME_LIMIT:
            error_msg = f"Time limit cannot exceed {self.MAX_TIME_LIMIT} seconds"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Timer too long: Maximum is {self.MAX_TIME_LIMIT} seconds ({self.MAX_TIME_LIMIT // 60} minutes)"
            }

        self._settings.default_time_limit = seconds
        self.logger.info(f"Default time limit set to {seconds} seconds")
        return {
            'success': True,
            'message': f"Default time limit set to {seconds} seconds",
            'user_message': f"✅ Default time limit set to {seconds} seconds"
        }

    def get_default_time_limit(self) -> int:
        return self._settings.default_time_limit

    def set_history_limit(self, limit: int) -> Dict[str, Any]:
        """
        Set how many attempts the history keeps.

        Args:
            limit: Number of attempts retained

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if isinstance(limit, bool) or not isinstance(limit, int):
            error_msg = f"History limit must be an integer, got {type(limit).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(limit).__name__}"
            }

        if not self.MIN_HISTORY_LIMIT <= limit <= self.MAX_HISTORY_LIMIT:
            error_msg = (f"History limit must be between {self.MIN_HISTORY_LIMIT} "
                         f"and {self.MAX_HISTORY_LIMIT}")
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ {error_msg}"
            }

        self._settings.history_limit = limit
        self.logger.info(f"History limit set to {limit}")
        return {
            'success': True,
            'message': f"History limit set to {limit}",
            'user_message': f"✅ Keeping the last {limit} attempts"
        }

    def get_history_limit(self) -> int:
        return self._settings.history_limit

    def set_tick_interval(self, seconds: float) -> Dict[str, Any]:
        """
        Set the seconds between countdown ticks.

        Args:
            seconds: Tick interval in seconds

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if isinstance(seconds, bool) or not isinstance(seconds, (int, float)):
            error_msg = f"Tick interval must be a number, got {type(seconds).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a number, got {type(seconds).__name__}"
            }

        if not self.MIN_TICK_INTERVAL <= seconds <= self.MAX_TICK_INTERVAL:
            error_msg = (f"Tick interval must be between {self.MIN_TICK_INTERVAL} "
                         f"and {self.MAX_TICK_INTERVAL} seconds")
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ {error_msg}"
            }

        self._settings.tick_interval = float(seconds)
        self.logger.info(f"Tick interval set to {seconds} seconds")
        return {
            'success': True,
            'message': f"Tick interval set to {seconds} seconds",
            'user_message': f"✅ Countdown ticks every {seconds} seconds"
        }

    def get_tick_interval(self) -> float:
        return self._settings.tick_interval

    def set_default_user_name(self, name: str) -> Dict[str, Any]:
        """
        Set the name recorded for players who do not give one.

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(name, str) or not name.strip():
            error_msg = "Default user name must be a non-empty string"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Default name cannot be empty"
            }

        name = name.strip()[:self.MAX_USER_NAME_LENGTH]
        self._settings.default_user_name = name
        self.logger.info(f"Default user name set to '{name}'")
        return {
            'success': True,
            'message': f"Default user name set to '{name}'",
            'user_message': f"✅ Default name set to {name}"
        }

    def get_default_user_name(self) -> str:
        return self._settings.default_user_name

    def set_history_file(self, path: Optional[str]) -> Dict[str, Any]:
        """
        Set the history file location, or None to keep history in memory only.

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if path is None:
            self._settings.history_file = None
            self.logger.info("Attempt history will be kept in memory only")
            return {
                'success': True,
                'message': "History file disabled",
                'user_message': "✅ Attempt history will not be saved to disk"
            }

        result = self._validate_path(path, "History file")
        if not result['success']:
            return result

        self._settings.history_file = result['path']
        self.logger.info(f"History file set to {result['path']}")
        return {
            'success': True,
            'message': f"History file set to {result['path']}",
            'user_message': f"✅ History file set to {result['path']}"
        }

    def get_history_file(self) -> Optional[str]:
        return self._settings.history_file

    def set_quiz_directory(self, directory: str) -> Dict[str, Any]:
        """
        Set the directory path for quiz files with validation.

        Args:
            directory: Path to quiz files directory

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        result = self._validate_path(directory, "Quiz directory")
        if not result['success']:
            return result

        self._quiz_directory = result['path']
        self.logger.info(f"Quiz directory set to {result['path']}")
        return {
            'success': True,
            'message': f"Quiz directory set to {result['path']}",
            'user_message': f"✅ Quiz directory set to {result['path']}"
        }

    def get_quiz_directory(self) -> str:
        return self._quiz_directory

    def _validate_path(self, path: str, label: str) -> Dict[str, Any]:
        if not isinstance(path, str):
            error_msg = f"{label} must be a string, got {type(path).__name__}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid input: Expected a path string, got {type(path).__name__}"
            }

        if not path.strip():
            error_msg = f"{label} cannot be empty"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ {label} cannot be empty"
            }

        try:
            normalized_path = str(Path(path).resolve())
        except (OSError, ValueError) as e:
            error_msg = f"Invalid {label.lower()} path format: {e}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Invalid path format: {path}"
            }

        # Refuse system directories
        system_dirs = ['/bin', '/usr', '/etc', '/sys', '/proc', 'C:\\Windows', 'C:\\Program Files']
        if any(normalized_path.startswith(sys_dir) for sys_dir in system_dirs):
            error_msg = f"Cannot use system directory: {normalized_path}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ Cannot use system directory: {path}"
            }

        return {'success': True, 'path': normalized_path}

    def reset_to_defaults(self) -> None:
        """Reset all settings to their default values."""
        self._settings = QuizSettings(
            default_time_limit=self.DEFAULT_TIME_LIMIT,
            history_limit=self.DEFAULT_HISTORY_LIMIT,
            default_user_name=self.DEFAULT_USER_NAME,
            tick_interval=self.DEFAULT_TICK_INTERVAL,
            history_file=self.DEFAULT_HISTORY_FILE
        )
        self._quiz_directory = self.DEFAULT_QUIZ_DIRECTORY
        self.logger.info("All settings reset to default values")

    def validate_settings(self) -> Dict[str, Any]:
        """
        Validate current settings and return validation results.

        Returns:
            Dictionary with validation results and any issues found
        """
        validation_result = {
            "valid": True,
            "issues": []
        }

        if not self.MIN_TIME_LIMIT <= self._settings.default_time_limit <= self.MAX_TIME_LIMIT:
            validation_result["valid"] = False
            validation_result["issues"].append(
                f"Invalid default time limit: {self._settings.default_time_limit}"
            )

        if not self.MIN_HISTORY_LIMIT <= self._settings.history_limit <= self.MAX_HISTORY_LIMIT:
            validation_result["valid"] = False
            validation_result["issues"].append(
                f"Invalid history limit: {self._settings.history_limit}"
            )

        if not self._settings.default_user_name.strip():
            validation_result["valid"] = False
            validation_result["issues"].append("Default user name is empty")

        if not self.MIN_TICK_INTERVAL <= self._settings.tick_interval <= self.MAX_TICK_INTERVAL:
            validation_result["valid"] = False
            validation_result["issues"].append(
                f"Invalid tick interval: {self._settings.tick_interval}"
            )

        if not isinstance(self._quiz_directory, str) or not self._quiz_directory.strip():
            validation_result["valid"] = False
            validation_result["issues"].append(
                f"Invalid quiz directory: {self._quiz_directory}"
            )

        return validation_result

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        history_file = self._settings.history_file or "memory only"
        return (
            f"Quiz Settings:\n"
            f"• Default time limit: {self._settings.default_time_limit} seconds\n"
            f"• Countdown tick: every {self._settings.tick_interval:g} seconds\n"
            f"• History: last {self._settings.history_limit} attempts ({history_file})\n"
            f"• Default name: {self._settings.default_user_name}\n"
            f"• Quiz Directory: {self._quiz_directory}"
        )
