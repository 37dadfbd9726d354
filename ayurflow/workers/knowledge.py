"""
Reference data for the built-in placeholder workers

A small, fixed table of well-documented herbs so the bundled workers return
stable, meaningful results without external services.
"""

from typing import Any, Dict, Optional

HERBS: Dict[str, Dict[str, Any]] = {
    'ashwagandha': {
        'botanical_name': 'Withania somnifera',
        'synonyms': ['winter cherry', 'withania', 'ashvagandha'],
        'sanskrit': 'अश्वगन्धा',
        'doshas': ['vata', 'kapha'],
        'uses': ['stress relief', 'sleep support', 'strength'],
        'compounds': ['withaferin a', 'withanolide d'],
    },
    'brahmi': {
        'botanical_name': 'Bacopa monnieri',
        'synonyms': ['bacopa', 'water hyssop'],
        'sanskrit': 'ब्राह्मी',
        'doshas': ['vata', 'pitta'],
        'uses': ['cognitive enhancement', 'memory support'],
        'compounds': ['bacoside a'],
    },
    'turmeric': {
        'botanical_name': 'Curcuma longa',
        'synonyms': ['haridra', 'haldi'],
        'sanskrit': 'हरिद्रा',
        'doshas': ['kapha', 'pitta', 'vata'],
        'uses': ['anti-inflammatory', 'wound healing', 'antioxidant'],
        'compounds': ['curcumin'],
    },
    'tulsi': {
        'botanical_name': 'Ocimum tenuiflorum',
        'synonyms': ['holy basil', 'tulasi'],
        'sanskrit': 'तुलसी',
        'doshas': ['kapha', 'vata'],
        'uses': ['respiratory support', 'stress relief', 'antimicrobial'],
        'compounds': ['eugenol'],
    },
}

COMPOUNDS: Dict[str, Dict[str, Any]] = {
    'withaferin a': {
        'formula': 'C28H38O6',
        'molecular_weight': 470.6,
        'logp': 3.8,
        'h_donors': 2,
        'h_acceptors': 6,
        'bioactivities': ['stress relief', 'anti-inflammatory'],
        'source_herb': 'ashwagandha',
    },
    'withanolide d': {
        'formula': 'C28H38O6',
        'molecular_weight': 470.6,
        'logp': 3.5,
        'h_donors': 2,
        'h_acceptors': 6,
        'bioactivities': ['strength'],
        'source_herb': 'ashwagandha',
    },
    'bacoside a': {
        'formula': 'C41H68O13',
        'molecular_weight': 769.0,
        'logp': 1.9,
        'h_donors': 7,
        'h_acceptors': 13,
        'bioactivities': ['memory support', 'antioxidant'],
        'source_herb': 'brahmi',
    },
    'curcumin': {
        'formula': 'C21H20O6',
        'molecular_weight': 368.4,
        'logp': 3.2,
        'h_donors': 2,
        'h_acceptors': 6,
        'bioactivities': ['anti-inflammatory', 'antioxidant'],
        'source_herb': 'turmeric',
    },
    'eugenol': {
        'formula': 'C10H12O2',
        'molecular_weight': 164.2,
        'logp': 2.3,
        'h_donors': 1,
        'h_acceptors': 2,
        'bioactivities': ['antimicrobial', 'anti-inflammatory'],
        'source_herb': 'tulsi',
    },
}


def match_herb(text: str) -> Optional[str]:
    """Find a known herb named in free text"""
    lowered = text.lower()
    for name, entry in HERBS.items():
        if name in lowered or entry['botanical_name'].lower() in lowered:
            return name
        if any(synonym in lowered for synonym in entry['synonyms']):
            return name
    return None


def match_compound(text: str) -> Optional[str]:
    lowered = text.lower().strip()
    if lowered in COMPOUNDS:
        return lowered
    for name in COMPOUNDS:
        if name in lowered:
            return name
    return None
