"""
Result synthesizer for ayurflow

Combines the outputs of a workflow's steps into one SynthesizedResult:
ranked findings, provenance, deduplicated recommendations, detected
conflicts and confidence-derived reliability and quality scores.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ..base.config import SynthesisConfig
from ..core.models import (
    Conflict,
    ConflictSeverity,
    Evidence,
    Finding,
    Recommendation,
    StepGap,
    SynthesizedResult,
    WorkerOutput,
)

logger = logging.getLogger(__name__)

PROVENANCE = {
    'literature': 'traditional',
    'compound': 'computational',
    'crossref': 'scientific',
}

STRENGTH_MULTIPLIERS = {
    'strong': 1.0,
    'moderate': 0.75,
    'weak': 0.5,
    'preliminary': 0.25,
}

EFFECT_DIRECTIONS = {
    'increase': 1.0,
    'increases': 1.0,
    'positive': 1.0,
    'beneficial': 1.0,
    'supports': 1.0,
    'decrease': -1.0,
    'decreases': -1.0,
    'negative': -1.0,
    'harmful': -1.0,
    'contradicts': -1.0,
    'neutral': 0.0,
    'none': 0.0,
    'no_effect': 0.0,
}


def _clamp(value: Any, default: float) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        return default
    return max(0.0, min(1.0, value))


def _entries(value: Any) -> List[Any]:
    """Items of a list-valued result field; any other value has none"""
    return list(value) if isinstance(value, (list, tuple)) else []


def effect_direction(effect: Any) -> Optional[float]:
    """Map a claim effect to a direction in [-1, 1]; None if unrecognised"""
    if isinstance(effect, bool):
        return None
    if isinstance(effect, (int, float)):
        return max(-1.0, min(1.0, float(effect)))
    if isinstance(effect, str):
        return EFFECT_DIRECTIONS.get(effect.strip().lower())
    return None


class ResultSynthesizer:
    """Pure combination of step outputs"""

    def __init__(self, config: Optional[SynthesisConfig] = None):
        self.config = config or SynthesisConfig()

    def combine(
        self,
        results: Mapping[str, WorkerOutput],
        *,
        step_workers: Optional[Mapping[str, str]] = None,
        required_workers: Optional[Iterable[str]] = None,
        gaps: Optional[List[StepGap]] = None
    ) -> SynthesizedResult:
        """
        Merge step outputs into a single result

        Args:
            results: step id -> output, in completion order
            step_workers: step id -> worker type; falls back to output metadata
            required_workers: worker types the category needs; defaults to the producing types
            gaps: optional steps that produced no output
        """
        gaps = list(gaps or [])
        if not results:
            return SynthesizedResult(
                gaps=gaps,
                metadata={'output_count': 0, 'synthesized_at': datetime.utcnow().isoformat()}
            )

        step_workers = dict(step_workers or {})
        worker_types = {
            step_id: step_workers.get(step_id) or output.worker_type
            for step_id, output in results.items()
        }
        workers_used = []
        for worker_type in worker_types.values():
            if worker_type and worker_type not in workers_used:
                workers_used.append(worker_type)

        evidence = self._evidence(results, worker_types)
        findings = self._findings(results, worker_types)
        conflicts = self._conflicts(results, worker_types)
        recommendations = self._recommendations(results, gaps)

        confidences = [output.confidence for output in results.values()]
        mean_confidence = sum(confidences) / len(confidences)
        penalty = max(0.0, 1.0 - self.config.conflict_penalty * len(conflicts))

        weighted = [(STRENGTH_MULTIPLIERS[item.strength] * item.confidence, item.confidence) for item in evidence]
        total_weight = sum(weight for weight, _ in weighted)
        reliability = sum(weight * conf for weight, conf in weighted) / total_weight if total_weight > 0 else 0.0

        required = set(required_workers) if required_workers is not None else set(workers_used)
        completeness = len(required & set(workers_used)) / len(required) if required else 0.0
        quality = (
            self.config.completeness_weight * completeness
            + self.config.confidence_weight * mean_confidence
        )

        return SynthesizedResult(
            primary_findings=findings,
            supporting_evidence=evidence,
            recommendations=recommendations,
            conflicts=conflicts,
            gaps=gaps,
            confidence=mean_confidence,
            reliability_score=min(1.0, reliability * penalty),
            quality_score=min(1.0, quality * penalty),
            workers_used=workers_used,
            metadata={
                'output_count': len(results),
                'conflict_count': len(conflicts),
                'completeness': completeness,
                'synthesized_at': datetime.utcnow().isoformat(),
            }
        )

    def _evidence(self, results: Mapping[str, WorkerOutput], worker_types: Dict[str, Optional[str]]) -> List[Evidence]:
        evidence = []
        for step_id, output in results.items():
            worker_type = worker_types[step_id]
            strength = output.metadata.get('evidence_strength')
            if not isinstance(strength, str) or strength not in STRENGTH_MULTIPLIERS:
                strength = 'moderate'
            summary = output.result.get('summary')
            evidence.append(Evidence(
                source_step=step_id,
                worker_type=worker_type,
                evidence_type=PROVENANCE.get(worker_type, 'scientific'),
                summary=summary if isinstance(summary, str) else "",
                confidence=output.confidence,
                strength=strength,
            ))
        return evidence

    def _findings(self, results: Mapping[str, WorkerOutput], worker_types: Dict[str, Optional[str]]) -> List[Finding]:
        scored: List[Tuple[float, Finding]] = []
        for step_id, output in results.items():
            worker_type = worker_types[step_id]
            entries = []
            for item in _entries(output.result.get('findings')):
                if isinstance(item, dict) and isinstance(item.get('statement'), str) and item['statement']:
                    entries.append((item['statement'], _clamp(item.get('confidence'), 1.0)))

            if not entries:
                summary = output.result.get('summary')
                if isinstance(summary, str) and summary:
                    entries.append((summary, 1.0))
                else:
                    entries.append((f"{worker_type or 'Worker'} analysis completed for step {step_id}", 1.0))

            for statement, confidence in entries:
                score = confidence * output.confidence
                scored.append((score, Finding(
                    statement=statement,
                    confidence=score,
                    source_step=step_id,
                    worker_type=worker_type,
                )))

        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [finding for _, finding in scored[:self.config.max_findings]]

    def _recommendations(self, results: Mapping[str, WorkerOutput], gaps: List[StepGap]) -> List[Recommendation]:
        by_category: Dict[str, Recommendation] = {}
        for step_id, output in results.items():
            for item in _entries(output.result.get('recommendations')):
                if not isinstance(item, dict) or not item.get('category') or not item.get('description'):
                    continue
                category = str(item['category'])
                confidence = _clamp(item.get('confidence'), output.confidence)
                risks = item.get('risks')
                if isinstance(risks, str):
                    risks = [risks]
                risks = [str(risk) for risk in _entries(risks)]

                existing = by_category.get(category)
                if existing is None:
                    by_category[category] = Recommendation(
                        category=category,
                        description=str(item['description']),
                        confidence=confidence,
                        supporting_evidence=[step_id],
                        risks=risks,
                    )
                    continue

                if step_id not in existing.supporting_evidence:
                    existing.supporting_evidence.append(step_id)
                existing.risks.extend(risk for risk in risks if risk not in existing.risks)
                if confidence > existing.confidence:
                    existing.description = str(item['description'])
                    existing.confidence = confidence

        recommendations = sorted(by_category.values(), key=lambda rec: rec.confidence, reverse=True)

        if not recommendations:
            recommendations.append(Recommendation(
                category='research',
                description="Corroborate these results with additional independent sources",
                confidence=0.5,
                supporting_evidence=list(results),
            ))

        for gap in gaps:
            recommendations.append(Recommendation(
                category='coverage',
                description=f"Re-run {gap.worker_type} analysis for step {gap.step_id}; it produced no output ({gap.error})",
                confidence=0.5,
                supporting_evidence=[],
                risks=['Result is missing this perspective'],
            ))
        return recommendations

    def _claims(self, output: WorkerOutput) -> Dict[Tuple[str, str], Dict[str, Any]]:
        """Strongest claim per (entity, attribute) for one output"""
        claims: Dict[Tuple[str, str], Dict[str, Any]] = {}
        for item in _entries(output.result.get('claims')):
            if not isinstance(item, dict):
                continue
            entity, attribute = item.get('entity'), item.get('attribute')
            direction = effect_direction(item.get('effect'))
            if not isinstance(entity, str) or not isinstance(attribute, str) or direction is None:
                continue
            key = (entity.strip().lower(), attribute.strip().lower())
            confidence = _clamp(item.get('confidence'), output.confidence)
            if key not in claims or confidence > claims[key]['confidence']:
                claims[key] = {
                    'entity': entity,
                    'attribute': attribute,
                    'effect': item.get('effect'),
                    'direction': direction,
                    'confidence': confidence,
                }
        return claims

    def _severity(self, confidence_gap: float) -> ConflictSeverity:
        # Two equally confident sources disagreeing is the hardest case
        if confidence_gap < self.config.high_severity_gap:
            return ConflictSeverity.HIGH
        if confidence_gap < self.config.medium_severity_gap:
            return ConflictSeverity.MEDIUM
        return ConflictSeverity.LOW

    def _conflicts(self, results: Mapping[str, WorkerOutput], worker_types: Dict[str, Optional[str]]) -> List[Conflict]:
        step_claims = [(step_id, self._claims(output)) for step_id, output in results.items()]
        conflicts = []

        for index, (first_step, first_claims) in enumerate(step_claims):
            for second_step, second_claims in step_claims[index + 1:]:
                for key in sorted(first_claims.keys() & second_claims.keys()):
                    first, second = first_claims[key], second_claims[key]
                    if abs(first['direction'] - second['direction']) <= self.config.conflict_threshold:
                        continue

                    gap = abs(first['confidence'] - second['confidence'])
                    stronger, weaker = (first_step, second_step) if first['confidence'] >= second['confidence'] else (second_step, first_step)
                    conflicts.append(Conflict(
                        sources=[first_step, second_step],
                        worker_types=[worker_types[first_step], worker_types[second_step]],
                        entity=first['entity'],
                        attribute=first['attribute'],
                        description=(
                            f"{first_step} reports '{first['effect']}' but {second_step} reports "
                            f"'{second['effect']}' for {first['attribute']} of {first['entity']}"
                        ),
                        severity=self._severity(gap),
                        resolution=(
                            f"Weigh {stronger} over {weaker} provisionally and seek independent "
                            f"evidence on {first['attribute']}"
                        ),
                    ))

        if conflicts:
            logger.info(f"Detected {len(conflicts)} conflicts across {len(results)} outputs")
        return conflicts
