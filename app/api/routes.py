from fastapi import APIRouter, Body, Query
from fastapi.responses import JSONResponse
from typing import Dict, Any, Optional
import os

from app.config import config
from app.utils.timing import timed
from app.utils.logger import setup_logger
from ..services.sql_conversion import ConversionOrchestrator, SqlConversionValidator, UnsupportedDialectError
from ..services.sql_conversion.rules.registry import load_rule_registry
from ..services.sql_conversion.utils.dialect_utils import pair_name, resolve_pair

api_router = APIRouter(prefix='/api/v1')

# Setup logger for API
logger = setup_logger('api_routes')


def _missing(payload: Dict[str, Any], *fields: str) -> list:
    return [f for f in fields if payload.get(f) in (None, '')]


def _validate_flag(payload: Dict[str, Any]) -> bool:
    return bool(payload.get('validate', config['conversion'].get('validate_by_default', False)))


@api_router.get('/')
def root():
    """Root endpoint of the API.

    Returns a simple JSON message indicating the API is running.
    {
        "message": "API is running"
    }
    """
    return JSONResponse({"message": "API is running"})


@api_router.post('/sql/convert')
def convert_sql_endpoint(payload: Dict[str, Any] = Body(...)):
    """Convert SQL text: ``{sql, source, target, validate?}``."""
    try:
        if not payload:
            return JSONResponse({'error': 'No JSON data provided'}, status_code=400)
        missing = _missing(payload, 'sql', 'source', 'target')
        if missing:
            return JSONResponse({'error': f'Missing required fields: {", ".join(missing)}'}, status_code=400)

        # Create a new orchestrator instance for each request
        orchestrator = ConversionOrchestrator(
            payload['source'],
            payload['target'],
            validate=_validate_flag(payload),
        )
        result = timed(orchestrator.convert_sql, payload['sql'])
        if orchestrator.validate:
            result['validation'] = {
                'quality_score': result.pop('quality_score', None),
                'error_count': sum(1 for w in result['warnings'] if w['severity'] == 'ERROR'),
            }
        return JSONResponse(result)

    except (UnsupportedDialectError, ValueError) as ve:
        return JSONResponse({'error': str(ve)}, status_code=400)
    except Exception as e:
        logger.error(f"An unhandled exception occurred in /sql/convert: {e}", exc_info=True)
        return JSONResponse({'error': 'An internal server error occurred.', 'details': str(e)}, status_code=500)


@api_router.post('/sql/validate')
def validate_sql_endpoint(payload: Dict[str, Any] = Body(...)):
    """Score a conversion: ``{original_sql, converted_sql, source, target}``."""
    try:
        missing = _missing(payload or {}, 'original_sql', 'converted_sql', 'source', 'target')
        if missing:
            return JSONResponse({'error': f'Missing required fields: {", ".join(missing)}'}, status_code=400)

        source, target = resolve_pair(payload['source'], payload['target'])
        result = timed(SqlConversionValidator().validate, payload['original_sql'], payload['converted_sql'],
                       source, target)
        return JSONResponse(result)

    except (UnsupportedDialectError, ValueError) as ve:
        return JSONResponse({'error': str(ve)}, status_code=400)
    except Exception as e:
        logger.error(f"An unhandled exception occurred in /sql/validate: {e}", exc_info=True)
        return JSONResponse({'error': 'An internal server error occurred.', 'details': str(e)}, status_code=500)


@api_router.post('/sql/convert_files')
def convert_files_endpoint(payload: Dict[str, Any] = Body(...)):
    """File mode: ``{input_path, source, target, output_dir?}``."""
    try:
        missing = _missing(payload or {}, 'input_path', 'source', 'target')
        if missing:
            return JSONResponse({'error': f'Missing required fields: {", ".join(missing)}'}, status_code=400)

        input_path = payload['input_path']
        if not os.path.exists(input_path):
            return JSONResponse({'error': f'Input path does not exist: {input_path}'}, status_code=404)

        orchestrator = ConversionOrchestrator(payload['source'], payload['target'],
                                              validate=_validate_flag(payload))
        result = timed(orchestrator.convert_directory, input_path, payload.get('output_dir'))
        return JSONResponse(result)

    except (UnsupportedDialectError, ValueError) as ve:
        return JSONResponse({'error': str(ve)}, status_code=400)
    except Exception as e:
        logger.error(f"An unhandled exception occurred in /sql/convert_files: {e}", exc_info=True)
        return JSONResponse({'error': 'An internal server error occurred.', 'details': str(e)}, status_code=500)


@api_router.get('/sql/rules')
def list_rules_endpoint(source: str = Query(...), target: str = Query(...),
                        function: Optional[str] = Query(None)):
    """List the function rules of a dialect pair, optionally a single function."""
    try:
        source_dialect, target_dialect = resolve_pair(source, target)
        registry = load_rule_registry()
        if function:
            rule = registry.get_rule(source_dialect, target_dialect, function)
            rules = [rule] if rule else []
        else:
            rules = registry.get_rules(source_dialect, target_dialect)
        return JSONResponse({
            'pair': pair_name(source_dialect, target_dialect),
            'function_rules': [rule.to_dict() for rule in rules],
            'parameterless': [{'source': r.source, 'target': r.target}
                              for r in registry.get_parameterless(source_dialect, target_dialect)],
            'syntax_fixes': [fix.name for fix in registry.get_syntax_fixes(source_dialect, target_dialect)],
        })

    except (UnsupportedDialectError, ValueError) as ve:
        return JSONResponse({'error': str(ve)}, status_code=400)
    except Exception as e:
        logger.error(f"An unhandled exception occurred in /sql/rules: {e}", exc_info=True)
        return JSONResponse({'error': 'An internal server error occurred.', 'details': str(e)}, status_code=500)
