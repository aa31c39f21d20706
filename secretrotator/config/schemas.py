"""Configuration file schemas for the secret rotator."""

ROTATION_POLICY_SCHEMA = {
    "type": "object",
    "properties": {
        "name": {
            "type": "string",
            "pattern": r"^[A-Za-z0-9][A-Za-z0-9_.-]*$",
            "description": "Unique policy name"
        },
        "rotation_interval": {
            "type": "string",
            "description": "Rotation interval, e.g. 24h or 1h30m"
        },
        "rotationInterval": {"type": "string"},
        "password_length": {
            "type": "integer",
            "minimum": 0,
            "default": 0,
            "description": "Password length, 0 selects the default of 16"
        },
        "passwordLength": {"type": "integer", "minimum": 0},
        "include_symbols": {
            "type": "boolean",
            "default": False
        },
        "includeSymbols": {"type": "boolean"},
        "store_path": {
            "type": "string",
            "minLength": 1,
            "description": "Path the secret is written to in the secret store"
        },
        "storePath": {"type": "string", "minLength": 1}
    },
    "required": ["name"],
    "allOf": [
        {"anyOf": [{"required": ["rotation_interval"]}, {"required": ["rotationInterval"]}]},
        {"anyOf": [{"required": ["store_path"]}, {"required": ["storePath"]}]}
    ],
    "additionalProperties": False
}

ROTATOR_CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "rotator": {
            "type": "object",
            "properties": {
                "version": {
                    "type": "string",
                    "pattern": r"^\d+\.\d+\.\d+$"
                },
                "state_file": {
                    "type": "string",
                    "default": ".secret-rotator/state.json"
                },
                "workers": {
                    "type": "integer",
                    "minimum": 1,
                    "default": 1
                }
            },
            "additionalProperties": False
        },
        "store": {
            "type": "object",
            "properties": {
                "type": {
                    "type": "string",
                    "enum": ["file", "vault"]
                },
                "file": {
                    "type": "object",
                    "properties": {
                        "directory": {"type": "string"},
                        "key_file": {"type": "string"}
                    },
                    "additionalProperties": False
                },
                "vault": {
                    "type": "object",
                    "properties": {
                        "address": {
                            "type": "string",
                            "pattern": r"^https?://"
                        },
                        "mount_point": {"type": "string"},
                        "auth": {
                            "type": "string",
                            "enum": ["token", "kubernetes"]
                        },
                        "token_env": {"type": "string"},
                        "role": {"type": "string"},
                        "timeout": {
                            "type": "integer",
                            "minimum": 1
                        }
                    },
                    "additionalProperties": False
                }
            },
            "required": ["type"],
            "additionalProperties": False
        },
        "rotations": {
            "type": "array",
            "items": ROTATION_POLICY_SCHEMA
        }
    },
    "required": ["rotations"],
    "additionalProperties": False
}
