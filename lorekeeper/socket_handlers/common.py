from flask import request
from pydantic import ValidationError
from lorekeeper.extensions import socketio

def socketio_unicast(event, data=None, **kwargs):
    if 'to' not in kwargs:
        kwargs['to'] = request.sid
    socketio.emit(event, data, **kwargs)

def validation_error_summary(pve: ValidationError) -> str:
    error_summary = "; ".join([f"{err['loc'][0] if err['loc'] else 'base'}: {err['msg']}" for err in pve.errors()])
    return f"Validation Error: {error_summary}"
