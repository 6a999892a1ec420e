"""Swagger/OpenAPI configuration for the application."""

# Swagger UI configuration
SWAGGER_URL = '/api/docs'
API_URL = '/api/swagger.json'

SWAGGER_UI_CONFIG = {
    'app_name': "Session Attendance API",
    'defaultModelsExpandDepth': -1,
    'docExpansion': 'list',
    'filter': True,
    'supportedSubmitMethods': ['get', 'post', 'put', 'delete'],
    'validatorUrl': None,
}


def _ok(description, schema_ref=None):
    response = {"description": description}
    if schema_ref:
        response["content"] = {
            "application/json": {"schema": {"$ref": f"#/components/schemas/{schema_ref}"}}
        }
    return response


def _error(description):
    return {
        "description": description,
        "content": {"application/json": {"schema": {"$ref": "#/components/schemas/Error"}}}
    }


def _json_body(properties, required=None):
    schema = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    return {"required": True, "content": {"application/json": {"schema": schema}}}


def _path_param(name):
    return {"name": name, "in": "path", "required": True, "schema": {"type": "integer"}}


def generate_swagger_spec():
    """Generate OpenAPI/Swagger specification."""
    secured = [{"bearerAuth": []}]

    return {
        "openapi": "3.0.0",
        "info": {
            "title": "Session Attendance API",
            "description": "QR check-in, absence requests, attendance rates and deposit settlement "
                           "for multi-session programs",
            "version": "1.0.0"
        },
        "servers": [
            {"url": "/", "description": "This server"}
        ],
        "components": {
            "securitySchemes": {
                "bearerAuth": {
                    "type": "http",
                    "scheme": "bearer",
                    "bearerFormat": "JWT"
                }
            },
            "schemas": {
                "Error": {
                    "type": "object",
                    "properties": {
                        "error": {"type": "boolean", "example": True},
                        "message": {"type": "string"},
                        "status_code": {"type": "integer"},
                        "code": {
                            "type": "string",
                            "enum": [
                                "INVALID_OR_EXPIRED_TOKEN", "NOT_A_PARTICIPANT", "ALREADY_CHECKED_IN",
                                "SESSION_NOT_FOUND", "FORBIDDEN", "DUPLICATE_ABSENCE_REQUEST",
                                "SESSION_ALREADY_PAST", "REQUEST_NOT_PENDING", "DEPOSIT_NOT_PAID",
                                "ALREADY_SETTLED", "CHECK_IN_CLOSED", "INVALID_STATUS",
                                "REQUEST_NOT_FOUND", "PROGRAM_NOT_FOUND", "PARTICIPANT_NOT_FOUND",
                                "DEPOSIT_NOT_FOUND", "VALIDATION_ERROR", "INTERNAL_ERROR"
                            ]
                        }
                    }
                },
                "CheckInToken": {
                    "type": "object",
                    "properties": {
                        "token": {"type": "string"},
                        "session_id": {"type": "integer"},
                        "valid_from": {"type": "string", "format": "date-time"},
                        "expires_at": {"type": "string", "format": "date-time"},
                        "expires_in": {"type": "integer"},
                        "check_in_url": {"type": "string"},
                        "qr_image": {"type": "string", "description": "PNG data URI"}
                    }
                },
                "CheckInResult": {
                    "type": "object",
                    "properties": {
                        "status": {"type": "string", "enum": ["PRESENT", "LATE"]},
                        "checked_at": {"type": "string", "format": "date-time"},
                        "method": {"type": "string", "enum": ["QR"]},
                        "late_minutes": {"type": "integer", "nullable": True},
                        "message": {"type": "string"}
                    }
                },
                "AttendanceSummary": {
                    "type": "object",
                    "properties": {
                        "held": {"type": "integer"},
                        "present": {"type": "integer"},
                        "late": {"type": "integer"},
                        "absent": {"type": "integer"},
                        "excused": {"type": "integer"},
                        "counted": {"type": "integer"},
                        "attended": {"type": "integer"},
                        "rate": {"type": "number", "example": 88.9},
                        "last_attended_at": {"type": "string", "format": "date-time", "nullable": True}
                    }
                },
                "AbsenceRequest": {
                    "type": "object",
                    "properties": {
                        "id": {"type": "integer"},
                        "session_id": {"type": "integer"},
                        "participant_id": {"type": "integer"},
                        "reason": {"type": "string"},
                        "attachment": {"type": "string", "nullable": True},
                        "status": {"type": "string", "enum": ["PENDING", "APPROVED", "REJECTED"]},
                        "reviewed_at": {"type": "string", "format": "date-time", "nullable": True}
                    }
                },
                "Deposit": {
                    "type": "object",
                    "properties": {
                        "participant_id": {"type": "integer"},
                        "status": {
                            "type": "string",
                            "enum": ["NONE", "UNPAID", "PAID", "RETURNED", "FORFEITED", "CARRIED"]
                        },
                        "amount": {"type": "integer"},
                        "return_amount": {"type": "integer", "nullable": True},
                        "forfeit_amount": {"type": "integer", "nullable": True},
                        "final_attendance_rate": {"type": "number", "nullable": True},
                        "settled_at": {"type": "string", "format": "date-time", "nullable": True}
                    }
                }
            }
        },
        "paths": {
            "/api/sessions/{session_id}/token": {
                "post": {
                    "tags": ["Check-in tokens"],
                    "summary": "Issue a check-in token (replaces the active one)",
                    "security": secured,
                    "parameters": [_path_param("session_id")],
                    "responses": {
                        "201": _ok("Token issued", "CheckInToken"),
                        "403": _error("Missing RUN_CHECK_IN capability"),
                        "404": _error("Session not found")
                    }
                },
                "get": {
                    "tags": ["Check-in tokens"],
                    "summary": "Current token status",
                    "security": secured,
                    "parameters": [_path_param("session_id")],
                    "responses": {"200": _ok("Token status")}
                }
            },
            "/api/sessions/{session_id}/token/refresh": {
                "post": {
                    "tags": ["Check-in tokens"],
                    "summary": "Rotate the token",
                    "security": secured,
                    "parameters": [_path_param("session_id")],
                    "responses": {"200": _ok("Token refreshed", "CheckInToken")}
                }
            },
            "/api/attendance/check-in": {
                "post": {
                    "tags": ["Attendance"],
                    "summary": "Check in with a scanned token",
                    "security": secured,
                    "requestBody": _json_body({"token": {"type": "string"}}, ["token"]),
                    "responses": {
                        "201": _ok("Checked in", "CheckInResult"),
                        "400": _error("Invalid or expired token, or check-in closed"),
                        "409": _error("Already checked in")
                    }
                }
            },
            "/api/attendance/validate": {
                "post": {
                    "tags": ["Attendance"],
                    "summary": "Validate a token without checking in",
                    "security": secured,
                    "requestBody": _json_body({"token": {"type": "string"}}, ["token"]),
                    "responses": {"200": _ok("Token is valid"), "400": _error("Invalid or expired token")}
                }
            },
            "/api/attendance/sessions/{session_id}/manual": {
                "post": {
                    "tags": ["Attendance"],
                    "summary": "Mark a participant PRESENT, LATE or ABSENT",
                    "security": secured,
                    "parameters": [_path_param("session_id")],
                    "requestBody": _json_body({
                        "user_id": {"type": "integer"},
                        "status": {"type": "string", "enum": ["PRESENT", "LATE", "ABSENT"]},
                        "note": {"type": "string"}
                    }, ["user_id", "status"]),
                    "responses": {"200": _ok("Attendance updated"), "403": _error("Forbidden")}
                }
            },
            "/api/attendance/sessions/{session_id}": {
                "get": {
                    "tags": ["Attendance"],
                    "summary": "Session roster with per-person status and counts",
                    "security": secured,
                    "parameters": [_path_param("session_id")],
                    "responses": {"200": _ok("Roster")}
                }
            },
            "/api/attendance/programs/{program_id}/participants/{user_id}/rate": {
                "get": {
                    "tags": ["Attendance"],
                    "summary": "Attendance rate of a participant",
                    "security": secured,
                    "parameters": [_path_param("program_id"), _path_param("user_id")],
                    "responses": {"200": _ok("Summary", "AttendanceSummary")}
                }
            },
            "/api/attendance/programs/{program_id}/me": {
                "get": {
                    "tags": ["Attendance"],
                    "summary": "Own history and summary",
                    "security": secured,
                    "parameters": [_path_param("program_id")],
                    "responses": {"200": _ok("History")}
                }
            },
            "/api/absences": {
                "post": {
                    "tags": ["Absences"],
                    "summary": "Request an excused absence",
                    "security": secured,
                    "requestBody": _json_body({
                        "session_id": {"type": "integer"},
                        "reason": {"type": "string"},
                        "attachment": {"type": "string"}
                    }, ["session_id", "reason"]),
                    "responses": {
                        "201": _ok("Submitted", "AbsenceRequest"),
                        "400": _error("Session already started"),
                        "409": _error("Duplicate request")
                    }
                }
            },
            "/api/absences/mine": {
                "get": {
                    "tags": ["Absences"],
                    "summary": "Own requests",
                    "security": secured,
                    "responses": {"200": _ok("Requests")}
                }
            },
            "/api/absences/programs/{program_id}": {
                "get": {
                    "tags": ["Absences"],
                    "summary": "Requests of a program (paginated)",
                    "security": secured,
                    "parameters": [_path_param("program_id")],
                    "responses": {"200": _ok("Requests")}
                }
            },
            "/api/absences/{request_id}/approve": {
                "post": {
                    "tags": ["Absences"],
                    "summary": "Approve; the session becomes EXCUSED",
                    "security": secured,
                    "parameters": [_path_param("request_id")],
                    "responses": {"200": _ok("Approved", "AbsenceRequest"), "409": _error("Not pending")}
                }
            },
            "/api/absences/{request_id}/reject": {
                "post": {
                    "tags": ["Absences"],
                    "summary": "Reject with a reason",
                    "security": secured,
                    "parameters": [_path_param("request_id")],
                    "requestBody": _json_body({"reason": {"type": "string"}}, ["reason"]),
                    "responses": {"200": _ok("Rejected", "AbsenceRequest"), "409": _error("Not pending")}
                }
            },
            "/api/absences/{request_id}": {
                "delete": {
                    "tags": ["Absences"],
                    "summary": "Cancel own pending request",
                    "security": secured,
                    "parameters": [_path_param("request_id")],
                    "responses": {"200": _ok("Cancelled"), "409": _error("Not pending")}
                }
            },
            "/api/programs/{program_id}/deposit-policy": {
                "get": {
                    "tags": ["Deposits"],
                    "summary": "Deposit policy",
                    "security": secured,
                    "parameters": [_path_param("program_id")],
                    "responses": {"200": _ok("Policy")}
                },
                "put": {
                    "tags": ["Deposits"],
                    "summary": "Update deposit policy",
                    "security": secured,
                    "parameters": [_path_param("program_id")],
                    "requestBody": _json_body({
                        "deposit_amount": {"type": "integer"},
                        "minimum_rate": {"type": "number"},
                        "shortfall_action": {"type": "string", "enum": ["FORFEIT", "CARRY"]},
                        "grace_minutes": {"type": "integer"},
                        "tiers": {
                            "type": "array",
                            "items": {
                                "type": "object",
                                "properties": {
                                    "min_rate": {"type": "number"},
                                    "refund_percent": {"type": "integer"},
                                    "label": {"type": "string"}
                                }
                            }
                        }
                    }),
                    "responses": {"200": _ok("Updated"), "400": _error("Validation error")}
                }
            },
            "/api/programs/{program_id}/deposits/summary": {
                "get": {
                    "tags": ["Deposits"],
                    "summary": "Counts and totals by status",
                    "security": secured,
                    "parameters": [_path_param("program_id")],
                    "responses": {"200": _ok("Summary")}
                }
            },
            "/api/programs/{program_id}/deposits/preview": {
                "get": {
                    "tags": ["Deposits"],
                    "summary": "Projected settlement of every participant",
                    "security": secured,
                    "parameters": [_path_param("program_id")],
                    "responses": {"200": _ok("Preview"), "403": _error("Forbidden")}
                }
            },
            "/api/programs/{program_id}/deposits/{user_id}/preview": {
                "get": {
                    "tags": ["Deposits"],
                    "summary": "Projected settlement from the current attendance rate",
                    "security": secured,
                    "parameters": [_path_param("program_id"), _path_param("user_id")],
                    "responses": {"200": _ok("Preview"), "404": _error("Participant not found")}
                }
            },
            "/api/programs/{program_id}/deposits/{user_id}": {
                "get": {
                    "tags": ["Deposits"],
                    "summary": "Deposit of one participant",
                    "security": secured,
                    "parameters": [_path_param("program_id"), _path_param("user_id")],
                    "responses": {"200": _ok("Deposit", "Deposit"), "404": _error("Deposit not found")}
                }
            },
            "/api/programs/{program_id}/deposits/{user_id}/payment": {
                "post": {
                    "tags": ["Deposits"],
                    "summary": "Record a deposit payment",
                    "security": secured,
                    "parameters": [_path_param("program_id"), _path_param("user_id")],
                    "responses": {"200": _ok("Recorded", "Deposit")}
                }
            },
            "/api/programs/{program_id}/deposits/{user_id}/settle": {
                "post": {
                    "tags": ["Deposits"],
                    "summary": "Settle one deposit (terminal)",
                    "security": secured,
                    "parameters": [_path_param("program_id"), _path_param("user_id")],
                    "responses": {
                        "200": _ok("Settled", "Deposit"),
                        "400": _error("Deposit not paid"),
                        "409": _error("Already settled")
                    }
                }
            },
            "/api/programs/{program_id}/deposits/settle-all": {
                "post": {
                    "tags": ["Deposits"],
                    "summary": "Settle every paid deposit, reporting per participant",
                    "security": secured,
                    "parameters": [_path_param("program_id")],
                    "responses": {"200": _ok("Settlement report")}
                }
            }
        }
    }
