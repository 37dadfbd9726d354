"""
Cross-reference worker

Placeholder mapping between traditional uses and modern findings. Uses the
outputs of prerequisite steps when available and falls back to the bundled
reference table otherwise.
"""

from typing import Any, Dict, List, Optional, Set

from ..core.models import ProcessingResult
from .definition import WorkerContext, worker
from .knowledge import COMPOUNDS, HERBS, match_compound, match_herb

SOURCE_TYPES = {'compound', 'literature', 'traditional_text', 'modern_study', 'therapeutic_area'}
TARGET_TYPES = SOURCE_TYPES | {'all'}
MAPPING_MODES = {'semantic', 'structural', 'therapeutic', 'cultural', 'comprehensive'}


def _completed_outputs(data: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [
        output for output in (data.get('prerequisites') or {}).values()
        if not output.get('missing')
    ]


def resolve_source(data: Dict[str, Any]) -> Optional[str]:
    identifier = data.get('sourceIdentifier')
    if isinstance(identifier, str) and identifier.strip():
        return identifier.strip()
    for output in _completed_outputs(data):
        result = output.get('result') or {}
        if result.get('herbs'):
            return result['herbs'][0]['name']
        if result.get('compound'):
            return result['compound']
    return None


def _traditional_uses(data: Dict[str, Any], herb: Optional[str]) -> Set[str]:
    uses = set()
    for output in _completed_outputs(data):
        for item in (output.get('result') or {}).get('therapeutic_uses') or []:
            uses.add(item['use'])
    if not uses and herb:
        uses.update(HERBS[herb]['uses'])
    return uses


def _modern_activities(data: Dict[str, Any], herb: Optional[str]) -> Set[str]:
    activities = set()
    for output in _completed_outputs(data):
        activities.update((output.get('result') or {}).get('bioactivities') or [])
    if not activities and herb:
        for name in HERBS[herb]['compounds']:
            activities.update(COMPOUNDS[name]['bioactivities'])
    return activities


@worker(
    "crossref",
    capabilities=['knowledge_mapping', 'traditional_modern_bridge', 'correlation_analysis'],
    max_concurrent_tasks=2,
    timeout_ms=360000,
    retry_attempts=2,
)
async def crossref_worker(context: WorkerContext) -> ProcessingResult:
    """Maps traditional knowledge onto modern scientific evidence"""
    data = context.data
    source = resolve_source(data)
    mapping_mode = data.get('mappingMode', 'comprehensive')

    herb = match_herb(source)
    if herb is None:
        compound = match_compound(source)
        herb = COMPOUNDS[compound]['source_herb'] if compound else None

    await context.checkpoint()

    traditional = _traditional_uses(data, herb)
    modern = _modern_activities(data, herb)
    shared = sorted(traditional & modern)
    unsupported = sorted(traditional - modern)
    coverage = len(shared) / len(traditional) if traditional else 0.0

    if coverage >= 0.75:
        strength = 'strong'
    elif coverage >= 0.5:
        strength = 'moderate'
    elif coverage > 0:
        strength = 'weak'
    else:
        strength = 'preliminary'

    entity = herb or source
    result = {
        'summary': (
            f"{len(shared)} of {len(traditional)} traditional uses of {entity} are supported by modern findings"
            if traditional else f"No traditional uses on record for {source}"
        ),
        'source': source,
        'mapping_mode': mapping_mode,
        'correlations': [{'traditional_use': use, 'modern_evidence': use, 'confidence': 0.8} for use in shared],
        'unsupported_uses': unsupported,
        'findings': [
            {'statement': f"Traditional {use} use of {entity} is consistent with modern evidence", 'confidence': 0.8}
            for use in shared
        ],
        'claims': [
            {'entity': entity, 'attribute': use, 'effect': 'increase', 'confidence': 0.7}
            for use in shared
        ],
        'recommendations': [
            {
                'category': 'research',
                'description': f"Design studies for the unsupported traditional use: {use}",
                'confidence': 0.6,
                'risks': ['Traditional claims may reflect formulation effects'],
            }
            for use in unsupported
        ],
    }

    return ProcessingResult(
        result=result,
        confidence=round(0.4 + 0.5 * coverage, 3),
        metadata={'evidence_strength': strength, 'mapping_mode': mapping_mode}
    )


@crossref_worker.validator
def validate_crossref_input(data: Dict[str, Any]):
    if resolve_source(data) is None:
        raise ValueError("sourceIdentifier is required")
    if data.get('sourceType', 'literature') not in SOURCE_TYPES:
        raise ValueError(f"sourceType must be one of: {', '.join(sorted(SOURCE_TYPES))}")
    if data.get('targetType', 'all') not in TARGET_TYPES:
        raise ValueError(f"targetType must be one of: {', '.join(sorted(TARGET_TYPES))}")
    if data.get('mappingMode', 'comprehensive') not in MAPPING_MODES:
        raise ValueError(f"mappingMode must be one of: {', '.join(sorted(MAPPING_MODES))}")
