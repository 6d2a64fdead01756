"""
Services layer for ScriptIntel.

Pure text analysis (prompt parsing, style features, script contract, scoped
edits) lives beside the Supabase-backed services (content store, style
training, intelligence context) and the OpenAI-backed generation service.
ScriptOrchestrator is the request-level entry point.
"""

from .models import (
    CategorySelection,
    ParsedPrompt,
    EvidenceResult,
    CreatorDnaProfile,
    CreatorStyleProfile,
    StyleContext,
    ScriptDraft,
    ScriptAdjustScope,
    ScriptSegment,
    TechnicalScriptQualityScore,
    ContractReport,
    ScriptGenerationResult,
    ScriptIntelligenceContext,
)

from .prompt_parser import parse_prompt
from .scoped_adjustment import ScriptScopeNotFoundError, detect_adjust_scope
from .script_contract import enforce_technical_script_contract
from .script_generation_service import ScriptGenerationService, ModelUnavailableError
from .intelligence_service import ScriptIntelligenceService
from .style_training_service import ScriptStyleProfileService
from .feature_service import FeatureService, FeatureKey
from .script_orchestrator import ScriptOrchestrator, ScriptRun

__all__ = [
    'CategorySelection',
    'ParsedPrompt',
    'EvidenceResult',
    'CreatorDnaProfile',
    'CreatorStyleProfile',
    'StyleContext',
    'ScriptDraft',
    'ScriptAdjustScope',
    'ScriptSegment',
    'TechnicalScriptQualityScore',
    'ContractReport',
    'ScriptGenerationResult',
    'ScriptIntelligenceContext',
    'parse_prompt',
    'ScriptScopeNotFoundError',
    'detect_adjust_scope',
    'enforce_technical_script_contract',
    'ScriptGenerationService',
    'ModelUnavailableError',
    'ScriptIntelligenceService',
    'ScriptStyleProfileService',
    'FeatureService',
    'FeatureKey',
    'ScriptOrchestrator',
    'ScriptRun',
]
