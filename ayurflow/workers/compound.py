"""
Compound worker

Placeholder compound analysis: descriptors, drug-likeness and bioactivity
for compounds in the bundled reference table. When no identifier is given
the first compound reported by a prerequisite literature step is analysed.
"""

from typing import Any, Dict, Optional

from ..core.models import ProcessingResult
from .definition import WorkerContext, worker
from .knowledge import COMPOUNDS, HERBS, match_compound, match_herb

IDENTIFIER_TYPES = {'smiles', 'inchi', 'name', 'formula', 'cas', 'pubchem_cid'}
ANALYSIS_TYPES = {'structure', 'properties', 'bioactivity', 'toxicity', 'admet', 'complete', 'ayurvedic_profile'}


def resolve_identifier(data: Dict[str, Any]) -> Optional[str]:
    """Compound identifier from the input, else from prerequisite literature output"""
    identifier = data.get('compoundIdentifier')
    if isinstance(identifier, str) and identifier.strip():
        return identifier.strip()

    for output in (data.get('prerequisites') or {}).values():
        if output.get('missing'):
            continue
        compounds = (output.get('result') or {}).get('compounds') or []
        if compounds:
            return compounds[0]['name']
    return None


@worker(
    "compound",
    capabilities=['structure_analysis', 'drug_likeness', 'bioactivity_prediction'],
    max_concurrent_tasks=3,
    timeout_ms=300000,
    retry_attempts=2,
)
async def compound_worker(context: WorkerContext) -> ProcessingResult:
    """Analyses a compound's structure, properties and bioactivity"""
    data = context.data
    identifier = resolve_identifier(data)
    analysis_type = data.get('analysisType', 'complete')

    await context.checkpoint()

    name = match_compound(identifier)
    if name is None:
        # A herb name resolves to its principal constituent
        herb = match_herb(identifier)
        if herb is not None:
            name = HERBS[herb]['compounds'][0]

    if name is None:
        return ProcessingResult(
            result={
                'summary': f"Compound '{identifier}' is not in the reference library",
                'compound': identifier,
                'findings': [],
                'claims': [],
                'recommendations': [{
                    'category': 'data_acquisition',
                    'description': f"Obtain structural data for '{identifier}' before analysis",
                    'confidence': 0.5,
                }],
            },
            confidence=0.15,
            metadata={'evidence_strength': 'preliminary', 'analysis_type': analysis_type}
        )

    entry = COMPOUNDS[name]
    violations = sum([
        entry['molecular_weight'] > 500,
        entry['logp'] > 5,
        entry['h_donors'] > 5,
        entry['h_acceptors'] > 10,
    ])
    drug_like = violations <= 1

    await context.checkpoint()

    result: Dict[str, Any] = {
        'summary': f"{name.title()} ({entry['formula']}) shows {', '.join(entry['bioactivities'])} activity",
        'compound': name,
        'descriptors': {
            'formula': entry['formula'],
            'molecular_weight': entry['molecular_weight'],
            'logp': entry['logp'],
            'h_donors': entry['h_donors'],
            'h_acceptors': entry['h_acceptors'],
        },
        'drug_likeness': {'lipinski_violations': violations, 'drug_like': drug_like},
        'bioactivities': list(entry['bioactivities']),
        'findings': [
            {'statement': f"{name.title()} has predicted {activity} activity", 'confidence': 0.75}
            for activity in entry['bioactivities']
        ],
        'claims': [
            {'entity': entry['source_herb'], 'attribute': activity, 'effect': 'increase', 'confidence': 0.75}
            for activity in entry['bioactivities']
        ],
        'recommendations': [],
    }
    if analysis_type in ('ayurvedic_profile', 'complete'):
        herb_entry = HERBS[entry['source_herb']]
        result['ayurvedic_profile'] = {'source_herb': entry['source_herb'], 'doshas': herb_entry['doshas']}
    if not drug_like:
        result['recommendations'].append({
            'category': 'formulation',
            'description': f"Investigate delivery strategies for {name}; oral bioavailability is likely limited",
            'confidence': 0.65,
            'risks': ['Poor absorption'],
        })

    return ProcessingResult(
        result=result,
        confidence=0.8 if drug_like else 0.65,
        metadata={'evidence_strength': 'moderate', 'analysis_type': analysis_type}
    )


@compound_worker.validator
def validate_compound_input(data: Dict[str, Any]):
    if resolve_identifier(data) is None:
        raise ValueError("compoundIdentifier is required")
    if data.get('identifierType', 'name') not in IDENTIFIER_TYPES:
        raise ValueError(f"identifierType must be one of: {', '.join(sorted(IDENTIFIER_TYPES))}")
    if data.get('analysisType', 'complete') not in ANALYSIS_TYPES:
        raise ValueError(f"analysisType must be one of: {', '.join(sorted(ANALYSIS_TYPES))}")
