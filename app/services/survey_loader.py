"""Survey loader service with caching and validation.

This module loads survey definitions from YAML (or JSON) files, validates them
against Pydantic schemas, caches the results, and builds fresh Survey
instances for each respondent.
"""

from pathlib import Path
from functools import lru_cache
from typing import Optional
import yaml
from pydantic import ValidationError

from app.config import get_settings
from app.models.survey import DuplicateQuestionError, Question, Survey
from app.schemas.survey import SurveyDefinition
from app.logging_config import get_logger

logger = get_logger(__name__)

# JSON is a subset of YAML, so safe_load reads both
DEFINITION_SUFFIXES = (".yaml", ".yml", ".json")


class SurveyNotFoundError(Exception):
    """Raised when a survey file is not found."""
    pass


class SurveyValidationError(Exception):
    """Raised when a survey fails validation."""
    pass


class SurveyLoader:
    """Service for loading and caching survey definitions.

    Definitions are loaded from ``<surveys_dir>/<survey_id>.yaml`` (or
    ``.yml``/``.json``) and validated against SurveyDefinition. Definitions
    are cached; Survey instances built from them never are.
    """

    def __init__(self, surveys_dir: Optional[str] = None):
        """Initialize survey loader.

        Args:
            surveys_dir: Path to surveys directory (defaults to the
                SURVEYS_DIR setting, then to <project root>/surveys)
        """
        if surveys_dir is None:
            surveys_dir = get_settings().surveys_dir
        if surveys_dir is None:
            project_root = Path(__file__).parent.parent.parent
            surveys_dir = project_root / "surveys"

        self.surveys_dir = Path(surveys_dir)

        if not self.surveys_dir.exists():
            logger.warning(f"Surveys directory not found: {self.surveys_dir}")

    def _find_definition_file(self, survey_id: str) -> Optional[Path]:
        for suffix in DEFINITION_SUFFIXES:
            path = self.surveys_dir / f"{survey_id}{suffix}"
            if path.exists():
                return path
        return None

    @lru_cache(maxsize=128)
    def load_survey(self, survey_id: str) -> SurveyDefinition:
        """Load and validate a survey definition.

        Results are cached for performance. Clear cache with
        clear_cache() if needed.

        Args:
            survey_id: Survey identifier (file name without extension)

        Returns:
            Validated SurveyDefinition

        Raises:
            SurveyNotFoundError: If no definition file exists
            SurveyValidationError: If the file cannot be parsed or fails validation

        Example:
            >>> loader = SurveyLoader()
            >>> definition = loader.load_survey("automated_survey")
            >>> print(definition.title)
            'Automated Survey'
        """
        path = self._find_definition_file(survey_id)

        if path is None:
            logger.error(f"Survey file not found: {survey_id} in {self.surveys_dir}")
            raise SurveyNotFoundError(f"Survey '{survey_id}' not found in {self.surveys_dir}")

        try:
            with open(path, 'r') as f:
                raw_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(f"YAML parsing error for {survey_id}: {e}")
            raise SurveyValidationError(f"Invalid YAML in survey '{survey_id}': {e}")
        except OSError as e:
            logger.error(f"Error reading survey file {path}: {e}")
            raise SurveyValidationError(f"Error reading survey '{survey_id}': {e}")

        if not isinstance(raw_data, dict):
            raise SurveyValidationError(
                f"Validation failed for survey '{survey_id}': expected a mapping at top level"
            )

        try:
            definition = SurveyDefinition(**raw_data)
            logger.info(
                f"Successfully loaded survey: {survey_id} "
                f"({len(definition.questions)} questions)"
            )
            return definition
        except ValidationError as e:
            logger.error(f"Validation error for survey {survey_id}: {e}")
            raise SurveyValidationError(f"Validation failed for survey '{survey_id}': {e}")

    @staticmethod
    def build_survey(definition: SurveyDefinition) -> Survey:
        """Build a new, unanswered Survey instance from a definition.

        Questions keep file order; those without an explicit id are numbered
        by Survey.add_question.

        Raises:
            SurveyValidationError: If two questions end up with the same id
        """
        survey = Survey(
            title=definition.title,
            welcome_message=definition.welcome_message,
            goodbye_message=definition.goodbye_message,
        )
        try:
            for question in definition.questions:
                survey.add_question(
                    Question(id=question.id, body=question.body, type=question.type)
                )
        except DuplicateQuestionError as e:
            logger.error(f"Cannot build survey '{definition.title}': {e}")
            raise SurveyValidationError(f"Validation failed for survey '{definition.title}': {e}")
        return survey

    def load(self, survey_id: str) -> Survey:
        """Load a definition and build a Survey instance from it."""
        return self.build_survey(self.load_survey(survey_id))

    def list_surveys(self) -> list[str]:
        """List all available survey IDs.

        Returns:
            Sorted survey IDs (file names without extension)
        """
        if not self.surveys_dir.exists():
            return []

        survey_ids = {
            f.stem
            for f in self.surveys_dir.iterdir()
            if f.is_file() and f.suffix in DEFINITION_SUFFIXES
        }

        logger.debug(f"Found {len(survey_ids)} surveys: {sorted(survey_ids)}")
        return sorted(survey_ids)

    def clear_cache(self):
        """Clear the survey cache.

        Useful during development or when surveys are updated at runtime.
        """
        self.load_survey.cache_clear()
        logger.info("Survey cache cleared")


# Global singleton instance
_loader_instance: Optional[SurveyLoader] = None


def get_survey_loader() -> SurveyLoader:
    """Get global SurveyLoader instance.

    Creates singleton instance on first call.

    Returns:
        Global SurveyLoader instance
    """
    global _loader_instance
    if _loader_instance is None:
        _loader_instance = SurveyLoader()
    return _loader_instance
