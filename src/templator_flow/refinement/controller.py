# src/templator_flow/refinement/controller.py
"""
RefinementController: loop limitado "gerar → validar → decidir".

Para cada iteração (1..max_iterations):
    1. valida o artefato corrente
    2. calcula ConfidenceMetrics
    3. registra a iteração
    4. troca o melhor artefato apenas se `overall` superar estritamente o melhor
    5. `overall >= confidence_threshold` encerra (única saída de sucesso)
    6. última iteração encerra sem gerar
    7. caso contrário, monta a RefinementInstruction e chama o gerador;
       exceção do gerador encerra o loop mantendo o melhor resultado

Ao final o melhor artefato visto é revalidado e devolvido: uma regressão
tardia nunca vence.

Invariantes:
    - `total_iterations == len(iterations)`
    - O gerador é chamado no máximo `max_iterations - 1` vezes
    - `improvement_achieved = final.overall > primeira.overall + improvement_threshold`
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Generic, List, Optional

from .confidence import compute_confidence, improvements_for
from .types import (
    A,
    ConfidenceMetrics,
    Generator,
    RefinementConfig,
    RefinementInstruction,
    RefinementIteration,
    RefinementResult,
    Severity,
    ValidationReport,
    Validator,
)

logger = logging.getLogger(__name__)

PromptBuilder = Callable[..., str]


def _describe_request(request: Any) -> str:
    if isinstance(request, dict):
        if not request:
            return "None specified"
        return "\n".join(f"{k}: {v}" for k, v in request.items())
    return str(request) if request is not None else "None specified"


def _bullets(items: List[str]) -> str:
    return "\n".join(f"- {i}" for i in items) if items else "None"


def render_prompt(
    *,
    request: Any,
    critical_issues: List[str],
    high_priority_issues: List[str],
    suggestions: List[str],
    previous_attempts: List[str],
    focus_areas: List[str],
) -> str:
    """Texto padrão da instrução de refinamento (substituível via `prompt_builder`)."""
    sections = [
        "You are refining an artifact that has validation issues. Fix the following "
        "problems while keeping the original functionality and intent.",
        "ORIGINAL REQUEST:\n" + _describe_request(request),
        "CRITICAL ISSUES TO FIX:\n" + _bullets(critical_issues),
        "HIGH PRIORITY ISSUES:\n" + _bullets(high_priority_issues),
        "IMPROVEMENT SUGGESTIONS:\n" + _bullets(suggestions),
    ]
    if previous_attempts:
        sections.append(
            f"Previous refinement attempts ({len(previous_attempts)}):\n"
            + "\n".join(previous_attempts)
        )
    if focus_areas:
        sections.append("Focus specifically on these areas: " + ", ".join(focus_areas))
    sections.append(
        "REFINEMENT GUIDELINES:\n"
        "1. Fix all critical and high-priority validation errors\n"
        "2. Maintain the original purpose and structure\n"
        "3. Make precise, targeted improvements"
    )
    return "\n\n".join(sections)


class RefinementController(Generic[A]):
    """
    Controller genérico de refinamento.

    Args:
        validator: Objeto com `validate(artifact) -> ValidationReport`.
        generator: Objeto com `generate(instruction) -> artifact`.
        config: Configuração default (sobrescrita por chamada em `refine`).
        prompt_builder: Substitui `render_prompt` na montagem da instrução.
    """

    def __init__(
        self,
        validator: Validator[A],
        generator: Generator[A],
        *,
        config: Optional[RefinementConfig] = None,
        prompt_builder: Optional[PromptBuilder] = None,
    ) -> None:
        self.validator = validator
        self.generator = generator
        self.config = config or RefinementConfig()
        self.prompt_builder = prompt_builder or render_prompt

    def build_instruction(
        self,
        request: Any,
        iteration: int,
        report: ValidationReport,
        previous: List[RefinementIteration[A]],
        focus_areas: List[str],
    ) -> RefinementInstruction:
        critical = [f"{e.message} ({e.code})" for e in report.errors if e.severity is Severity.CRITICAL]
        high = [f"{e.message} ({e.code})" for e in report.errors if e.severity is Severity.HIGH]
        attempts = [
            f"Attempt {it.iteration}: {', '.join(it.improvements) or 'no improvements listed'}"
            for it in previous
        ]
        prompt = self.prompt_builder(
            request=request,
            critical_issues=critical,
            high_priority_issues=high,
            suggestions=list(report.suggestions),
            previous_attempts=attempts,
            focus_areas=list(focus_areas),
        )
        return RefinementInstruction(
            request=request,
            iteration=iteration,
            critical_issues=critical,
            high_priority_issues=high,
            suggestions=list(report.suggestions),
            previous_attempts=attempts,
            focus_areas=list(focus_areas),
            prompt=prompt,
        )

    def refine(
        self,
        request: Any,
        initial_artifact: A,
        config: Optional[RefinementConfig] = None,
    ) -> RefinementResult[A]:
        cfg = config or self.config
        if cfg.max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")

        started = time.perf_counter()
        iterations: List[RefinementIteration[A]] = []
        current = initial_artifact
        best = initial_artifact
        best_confidence: Optional[ConfidenceMetrics] = None

        logger.info(
            "Starting refinement (max_iterations=%s, threshold=%s)",
            cfg.max_iterations,
            cfg.confidence_threshold,
        )

        for iteration in range(1, cfg.max_iterations + 1):
            report = self.validator.validate(current)
            confidence = compute_confidence(report)
            improvements = improvements_for(report, confidence)

            reached = confidence.overall >= cfg.confidence_threshold
            last = iteration == cfg.max_iterations
            instruction = None
            if not reached and not last:
                instruction = self.build_instruction(
                    request, iteration, report, iterations, cfg.focus_areas
                )

            iterations.append(
                RefinementIteration(
                    iteration=iteration,
                    artifact=current,
                    validation=report,
                    confidence=confidence,
                    improvements=improvements,
                    instruction=instruction,
                )
            )

            if best_confidence is None or confidence.overall > best_confidence.overall:
                best, best_confidence = current, confidence

            logger.debug("Iteration %s: overall=%s", iteration, confidence.overall)

            if reached:
                logger.info("Confidence threshold reached at iteration %s (%s)", iteration, confidence.overall)
                break
            if last:
                logger.info("Reached maximum iterations (%s)", cfg.max_iterations)
                break

            try:
                current = self.generator.generate(instruction)
            except Exception:
                logger.warning("Refinement iteration %s failed; keeping best result", iteration, exc_info=True)
                break

        final_validation = self.validator.validate(best)
        final_confidence = compute_confidence(final_validation)
        first = iterations[0].confidence.overall
        improvement_achieved = final_confidence.overall > first + cfg.improvement_threshold
        elapsed_ms = (time.perf_counter() - started) * 1000.0

        logger.info(
            "Refinement finished: iterations=%s first=%s final=%s improved=%s",
            len(iterations),
            first,
            final_confidence.overall,
            improvement_achieved,
        )
        return RefinementResult(
            final_artifact=best,
            final_validation=final_validation,
            final_confidence=final_confidence,
            iterations=iterations,
            total_iterations=len(iterations),
            improvement_achieved=improvement_achieved,
            processing_time_ms=elapsed_ms,
        )

    def summary(self, result: RefinementResult[A]) -> Dict[str, Any]:
        """Resumo serializável (para métricas de StepRun ou logs)."""
        return {
            "total_iterations": result.total_iterations,
            "improvement_achieved": result.improvement_achieved,
            "processing_time_ms": result.processing_time_ms,
            "confidence": result.final_confidence.to_dict(),
            "history": [it.confidence.overall for it in result.iterations],
        }
