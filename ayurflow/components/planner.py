"""
Workflow planner for ayurflow

Turns a task category into an ordered, dependency-annotated list of
workflow steps using static YAML templates. The planner never looks at
live worker state.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple, Union

import yaml

from ..core.errors import ConfigurationError, ErrorCode
from ..core.models import TaskCategory, WorkflowStep, parse_category

logger = logging.getLogger(__name__)

BUNDLED_TEMPLATES = Path(__file__).resolve().parent.parent / "templates" / "workflows.yaml"

# ${input.key} or ${input.key|default}; a default may itself contain placeholders
PLACEHOLDER_START = '${input.'
PLACEHOLDER_KEY = re.compile(r'[\w.]+')


@dataclass
class WorkflowTemplate:
    """A validated template for one category"""
    category: TaskCategory
    description: str
    required_workers: Set[str]
    steps: List[WorkflowStep] = field(default_factory=list)

    def describe(self) -> Dict[str, Any]:
        return {
            'category': self.category.value,
            'description': self.description,
            'required_workers': sorted(self.required_workers),
            'steps': [
                {
                    'step_id': step.step_id,
                    'worker_type': step.worker_type,
                    'dependencies': list(step.dependencies),
                    'parallel': step.parallel,
                    'optional': step.optional,
                }
                for step in self.steps
            ],
        }


class WorkflowPlanner:
    """Generates workflows from templates"""

    def __init__(self, templates_path: Optional[Union[str, Path]] = None, templates: Optional[Dict[str, Any]] = None):
        if templates is None:
            templates = self._load_file(Path(templates_path) if templates_path else BUNDLED_TEMPLATES)
        self.templates: Dict[TaskCategory, WorkflowTemplate] = self._parse_templates(templates)
        logger.info(f"Loaded {len(self.templates)} workflow templates")

    @staticmethod
    def _load_file(path: Path) -> Dict[str, Any]:
        if not path.exists():
            raise ConfigurationError(f"Workflow template file not found: {path}", code=ErrorCode.TEMPLATE_INVALID)
        try:
            with open(path, 'r') as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}", code=ErrorCode.TEMPLATE_INVALID)
        return data

    def _parse_templates(self, data: Dict[str, Any]) -> Dict[TaskCategory, WorkflowTemplate]:
        workflows = data.get('workflows') if isinstance(data, dict) else None
        if not isinstance(workflows, dict) or not workflows:
            raise ConfigurationError("Template document must contain a 'workflows' mapping", code=ErrorCode.TEMPLATE_INVALID)

        parsed = {}
        for name, body in workflows.items():
            template = self._parse_template(name, body)
            parsed[template.category] = template
        return parsed

    def _parse_template(self, name: str, body: Dict[str, Any]) -> WorkflowTemplate:
        category = parse_category(name)
        if not isinstance(body, dict):
            raise ConfigurationError(f"Template '{name}' must be a mapping", code=ErrorCode.TEMPLATE_INVALID)

        required = set(body.get('required_workers') or [])
        steps = []
        for index, step_data in enumerate(body.get('steps') or []):
            if not isinstance(step_data, dict) or 'id' not in step_data or 'worker' not in step_data:
                raise ConfigurationError(
                    f"Template '{name}' step {index} needs 'id' and 'worker'",
                    code=ErrorCode.TEMPLATE_INVALID
                )
            optional = bool(step_data.get('optional', False))
            max_retries = step_data.get('max_retries')
            if max_retries is None and optional:
                # Optional steps are single-attempt unless the template says otherwise
                max_retries = 0
            steps.append(WorkflowStep(
                step_id=step_data['id'],
                worker_type=step_data['worker'],
                input=dict(step_data.get('input') or {}),
                dependencies=list(step_data.get('dependencies') or []),
                parallel=bool(step_data.get('parallel', False)),
                optional=optional,
                max_retries=max_retries,
            ))

        if not steps:
            raise ConfigurationError(f"Template '{name}' has no steps", code=ErrorCode.TEMPLATE_INVALID)

        if not required:
            required = {step.worker_type for step in steps}
        outside = {step.worker_type for step in steps} - required
        if outside:
            raise ConfigurationError(
                f"Template '{name}' uses workers outside its required set: {', '.join(sorted(outside))}",
                code=ErrorCode.TEMPLATE_INVALID
            )

        validate_workflow(steps)
        return WorkflowTemplate(
            category=category,
            description=body.get('description', ''),
            required_workers=required,
            steps=steps,
        )

    def _template(self, category: Union[str, TaskCategory]) -> WorkflowTemplate:
        category = parse_category(category)
        template = self.templates.get(category)
        if template is None:
            raise ConfigurationError(
                f"No workflow template for category: {category.value}",
                code=ErrorCode.UNKNOWN_CATEGORY
            )
        return template

    def categories(self) -> List[TaskCategory]:
        return list(self.templates)

    def describe(self, category: Union[str, TaskCategory]) -> Dict[str, Any]:
        return self._template(category).describe()

    def required_workers(self, category: Union[str, TaskCategory]) -> Set[str]:
        """Worker types a category needs"""
        return set(self._template(category).required_workers)

    def generate(
        self,
        category: Union[str, TaskCategory],
        required_workers: Iterable[str],
        task_input: Optional[Dict[str, Any]] = None
    ) -> List[WorkflowStep]:
        """
        Build the workflow for a category

        Only steps whose worker type is in required_workers are emitted;
        omitting a step another emitted step depends on is an error.
        Step inputs have ${input.*} placeholders resolved against task_input.
        """
        template = self._template(category)
        allowed = set(required_workers)
        task_input = task_input or {}

        steps = [step for step in template.steps if step.worker_type in allowed]
        emitted = {step.step_id for step in steps}
        for step in steps:
            dropped = [dep for dep in step.dependencies if dep not in emitted]
            if dropped:
                raise ConfigurationError(
                    f"Step '{step.step_id}' depends on omitted steps: {', '.join(dropped)}",
                    code=ErrorCode.TEMPLATE_INVALID,
                    context={'category': template.category.value}
                )

        workflow = []
        for step in steps:
            planned = step.model_copy(deep=True)
            planned.input = resolve_placeholders(step.input, task_input)
            workflow.append(planned)

        logger.debug(f"Planned {len(workflow)} steps for {template.category.value}")
        return workflow


def validate_workflow(steps: List[WorkflowStep]):
    """Check step ids are unique, prerequisites exist and the graph is acyclic"""
    ids = [step.step_id for step in steps]
    duplicates = {step_id for step_id in ids if ids.count(step_id) > 1}
    if duplicates:
        raise ConfigurationError(f"Duplicate step ids: {', '.join(sorted(duplicates))}", code=ErrorCode.TEMPLATE_INVALID)

    known = set(ids)
    for step in steps:
        missing = [dep for dep in step.dependencies if dep not in known]
        if missing:
            raise ConfigurationError(
                f"Step '{step.step_id}' has unknown prerequisites: {', '.join(missing)}",
                code=ErrorCode.TEMPLATE_INVALID
            )

    # Kahn's algorithm
    remaining = {step.step_id: set(step.dependencies) for step in steps}
    while remaining:
        ready = [step_id for step_id, deps in remaining.items() if not deps]
        if not ready:
            raise ConfigurationError(
                f"Circular dependency between steps: {', '.join(sorted(remaining))}",
                code=ErrorCode.CIRCULAR_DEPENDENCY
            )
        for step_id in ready:
            del remaining[step_id]
        for deps in remaining.values():
            deps.difference_update(ready)


def _lookup(task_input: Dict[str, Any], path: str) -> Any:
    value: Any = task_input
    for part in path.split('.'):
        if not isinstance(value, dict) or part not in value:
            return None
        value = value[part]
    return value


def _default(text: Optional[str]) -> Any:
    if text is None or text == "":
        return None
    # Scalars only: "20" becomes 20, anything structured stays text
    try:
        value = yaml.safe_load(text)
    except yaml.YAMLError:
        return text
    return value if isinstance(value, (str, int, float, bool)) else text


def _parse_placeholder(text: str, start: int) -> Optional[Tuple[str, Optional[str], int]]:
    """Parse the placeholder at text[start:] into (key, default, end), None if malformed"""
    key = PLACEHOLDER_KEY.match(text, start + len(PLACEHOLDER_START))
    if not key:
        return None
    pos = key.end()
    default = None
    if text.startswith('|', pos):
        depth = 0
        scan = pos + 1
        while scan < len(text):
            if text.startswith('${', scan):
                depth += 1
                scan += 2
                continue
            if text[scan] == '}':
                if depth == 0:
                    break
                depth -= 1
            scan += 1
        else:
            return None
        default = text[pos + 1:scan]
        pos = scan
    if not text.startswith('}', pos):
        return None
    return key.group(0), default, pos + 1


def _resolve_string(text: str, task_input: Dict[str, Any]) -> Any:
    # Only template text is scanned; substituted input values are never re-read
    if text.startswith(PLACEHOLDER_START):
        parsed = _parse_placeholder(text, 0)
        if parsed and parsed[2] == len(text):
            key, default, _ = parsed
            value = _lookup(task_input, key)
            if value is not None:
                return value
            if default is not None and PLACEHOLDER_START in default:
                return _resolve_string(default, task_input)
            return _default(default)

    pieces = []
    pos = 0
    while True:
        start = text.find(PLACEHOLDER_START, pos)
        if start < 0:
            pieces.append(text[pos:])
            return "".join(pieces)
        parsed = _parse_placeholder(text, start)
        if parsed is None:
            end = start + len(PLACEHOLDER_START)
            pieces.append(text[pos:end])
            pos = end
            continue
        key, default, end = parsed
        value = _lookup(task_input, key)
        if value is None and default:
            value = _resolve_string(default, task_input)
        pieces.append(text[pos:start])
        pieces.append("" if value is None else str(value))
        pos = end


def resolve_placeholders(value: Any, task_input: Dict[str, Any]) -> Any:
    """Recursively resolve ${input.*} references; unresolved keys are dropped"""
    if isinstance(value, str):
        return _resolve_string(value, task_input)
    if isinstance(value, dict):
        resolved = {}
        for key, item in value.items():
            item = resolve_placeholders(item, task_input)
            if item is not None:
                resolved[key] = item
        return resolved
    if isinstance(value, list):
        return [resolve_placeholders(item, task_input) for item in value]
    return value
