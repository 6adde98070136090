import base64
from flask import Blueprint, jsonify, request
from pydantic import ValidationError
from lorekeeper.constants import FileType
from lorekeeper.dto.lorebook_dto import LorebookImportDTO
from lorekeeper.extensions import log
from lorekeeper.services import lorebook_service
from lorekeeper.services.lorebook_service import LorebookImportError, LorebookServiceError

main_bp = Blueprint('main', __name__)


@main_bp.route('/health')
def health():
    return jsonify({'status': 'ok'})

@main_bp.route('/lorebooks/import', methods=['POST'])
def import_lorebook_file():
    """Imports a lorebook uploaded as multipart 'file' (.json or .png)."""
    uploaded = request.files.get('file')
    if uploaded is None or not uploaded.filename:
        return jsonify({'error': "Missing required file field 'file'"}), 400

    raw = uploaded.read()
    is_png = uploaded.filename.lower().endswith('.png')
    try:
        import_dto = LorebookImportDTO(
            file_data=base64.b64encode(raw).decode('ascii') if is_png else raw.decode('utf-8'),
            file_name=uploaded.filename,
            file_type=FileType.PNG if is_png else FileType.JSON,
            custom_name=request.form.get('name') or None,
            user_id=request.form.get('user_id') or None,
            session_id=request.form.get('session_id') or None
        )
        lorebook_dto = lorebook_service.import_lorebook(import_dto)
        return jsonify({'message': 'success', 'lorebook': lorebook_dto.model_dump(mode='json')}), 201
    except UnicodeDecodeError:
        return jsonify({'error': 'JSON file must be UTF-8 encoded'}), 400
    except ValidationError as pve:
        log.error(f"DTO Validation error importing lorebook: {pve}")
        return jsonify({'error': 'Validation Error', 'errors': [err['msg'] for err in pve.errors()]}), 400
    except LorebookImportError as e:
        log.warning(f"Lorebook import rejected: {e}")
        return jsonify({'error': str(e), 'errors': e.errors}), 400
    except LorebookServiceError as e:
        log.error(f"Service error importing lorebook: {e}")
        return jsonify({'error': str(e)}), 500
