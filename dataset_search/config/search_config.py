"""
Configuration settings for the dataset catalog search engine.
"""

import os
from pathlib import Path

# Base directories
PACKAGE_DIR = Path(__file__).parent.parent
BASE_DIR = PACKAGE_DIR.parent
CONFIG_DIR = Path(__file__).parent

# Data directory - use environment variable in production, local path in development
DATA_DIR = Path(os.getenv("DATA_DIR", str(BASE_DIR / "data")))

# Ensure data directories exist
DATA_DIR.mkdir(parents=True, exist_ok=True)

# Database paths - support environment variable overrides for production
DATABASE_PATH = os.getenv("DATABASE_PATH", str(DATA_DIR / "catalog.db"))

# txtai vector index directory
VECTOR_INDEX_PATH = os.getenv("VECTOR_INDEX_PATH", str(DATA_DIR / "txtai"))

# Lexicon file: scientific concepts, gazetteer, temporal hint patterns
TERMS_CONFIG = os.getenv("TERMS_CONFIG", str(CONFIG_DIR / "terms_config.json"))


# EMBEDDING MODEL CONFIGURATION
#
# Model: nomic-ai/nomic-embed-text-v1.5 (768 dimensions)
#
# The nomic model requires task instruction prefixes:
# Documents: "search_document: <text>"
# Queries:   "search_query: <text>"

EMBEDDING_CONFIG = {
    "path": os.getenv("EMBEDDING_MODEL", "nomic-ai/nomic-embed-text-v1.5"),

    # "synthetic" as path selects deterministic vectors with no model download
    "backend": "numpy",
    "trust_remote_code": True,

    "prefix_document": "search_document: ",
    "prefix_query": "search_query: ",

    # Deterministic stand-in vectors used when the model cannot be loaded
    "synthetic_dimensions": 16,

    # Backfill batch size (records per index upsert)
    "batch_size": 32,
}


# GENERATIVE TEXT CONFIGURATION

GENERATIVE_CONFIG = {
    "api_key": os.getenv("GEMINI_API_KEY", ""),
    "model": os.getenv("GEMINI_MODEL", "gemini-1.5-flash"),
    "endpoint": "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent",
    "timeout_seconds": 8.0,
    "not_configured_message": (
        "AI is not configured on this environment. "
        "Showing best-effort results from lexical/semantic fallback."
    ),
}


# TERM EXPANSION CONFIGURATION

EXPANSION_CONFIG = {
    "base_confidence": 0.5,
    "concept_increment": 0.1,
    "location_increment": 0.15,
    "temporal_increment": 0.1,

    # Below this confidence the generative model is asked for more terms
    "enrichment_threshold": 0.7,
    "enrichment_timeout_seconds": 6.0,

    # Shorter tokens only match a concept by equality, never by containment
    "min_containment_length": 4,

    # How much of the expansion is appended to the semantic query text
    "semantic_synonyms": 3,
    "semantic_variables": 3,
}


# LEXICAL RETRIEVAL CONFIGURATION

LEXICAL_CONFIG = {
    # Candidate ids fetched = page * size * overfetch, clamped to [min, max]
    "overfetch_multiplier": 5,
    "min_candidates": 100,
    "max_candidates": 1000,

    # Per-tier query timeout
    "tier_timeout_seconds": 5.0,

    # rapidfuzz partial-ratio thresholds (0-1) used by the base-table tier;
    # one typo in a ten-letter word still scores about 0.9
    "title_similarity_threshold": 0.8,
    "abstract_similarity_threshold": 0.85,

    # Words ignored when splitting variable names into single-word tokens
    "variable_stopwords": ["data", "time", "level"],
    "variable_min_word_length": 4,
}


# VARIABLE RELEVANCE (soft sort key)

VARIABLE_RELEVANCE_CONFIG = {
    "exact_match": 20,
    "phrase_per_word": 8,
    "long_substring": 5,
    "short_substring": 2,

    # Each cluster: query-side patterns, record-side field fragments, bonus
    "clusters": [
        {"patterns": ["wind", "eastward", "northward"],
         "fields": ["wind", "u_component", "v_component", "eastward", "northward"],
         "bonus": 6},
        {"patterns": ["temperature", "temp", "sst"],
         "fields": ["temperature", "temp", "sst", "thermal"],
         "bonus": 6},
        {"patterns": ["current", "velocity"],
         "fields": ["current", "velocity", "flow", "stream"],
         "bonus": 6},
        {"patterns": ["salinity", "salt"],
         "fields": ["salinity", "salt", "saline"],
         "bonus": 6},
        {"patterns": ["surface", "sea_surface"],
         "fields": ["surface", "sea_surface", "skin"],
         "bonus": 4},
    ],
}


# SEMANTIC RETRIEVAL CONFIGURATION

SEMANTIC_CONFIG = {
    # txtai embeds and searches in one call, bounded by the sum of both
    "embed_timeout_seconds": 5.0,
    "query_timeout_seconds": 5.0,
    "max_k": 1000,
}


# FUSION CONFIGURATION

FUSION_CONFIG = {
    "rrf_k": 60,
    "max_candidates": 500,
    "default_candidates": 100,
}


# RERANKING CONFIGURATION
#
# Every signal yields a raw value in [0, 1]; the contribution is
# weight * raw * (1/(1+i) - 1/(4+i)) for fusion position i, so no single
# signal can move a record past one sitting three or more places ahead.

RERANKING_CONFIG = {
    "weights": {
        "service_quality": 0.6,
        "variable_relevance": 0.9,
        "recency": 0.4,
        "publisher_trust": 0.5,
        "openness": 0.3,
        "text_match": 0.8,
        "completeness": 0.3,
    },

    "service_scores": {
        "ERDDAP": 1.0,
        "OPeNDAP": 0.9,
        "THREDDS": 0.8,
        "S3": 0.5,
        "FTP": 0.3,
        "HTTP": 0.1,
    },

    # Variable bonus levels: exact name > shared domain cluster > partial
    "variable_levels": {
        "exact": 1.0,
        "cluster": 0.6,
        "partial": 0.3,
    },

    "recency_years": 8.0,

    # Single words match whole publisher words; multi-word names match as substrings
    "publisher_tiers": [
        {"score": 1.0, "names": [
            "noaa", "nasa", "ncei", "copernicus", "esa", "usgs",
            "eumetsat", "met office", "ecmwf", "jaxa",
        ]},
        {"score": 0.7, "names": [
            "scripps", "woods hole", "whoi", "mbari", "ncar", "ifremer",
            "jamstec", "csiro", "bco-dmo", "pangaea", "lamont",
        ]},
        {"score": 0.5, "names": [
            "ioos", "sccoos", "cencoos", "nanoos", "gcoos", "secoora",
            "maracoos", "neracoos", "pacioos", "aoos", "glos", "caricoos", "imos",
        ]},
        {"score": 0.3, "names": ["university", "institute", "college"]},
    ],

    "permissive_licenses": [
        "cc-by", "cc by", "cc0", "creative commons", "public domain",
        "odbl", "pddl", "open data", "ogl", "us government work",
    ],

    "completeness_min_variables": 5,
    "completeness_min_distributions": 1,
}


# HYDRATION / PAGINATION

HYDRATION_CONFIG = {
    "batch_size": 200,
}

PAGINATION_CONFIG = {
    "default_size": 20,
    "max_size": 100,
}


# AUTOCOMPLETE SUGGESTIONS

SUGGEST_CONFIG = {
    "limit": 10,

    # Curated oceanographic and paleo proxy variables, merged with catalog names
    "curated_variables": [
        "sea_surface_temperature",
        "sea_water_temperature",
        "sea_water_salinity",
        "chlorophyll_concentration",
        "wave_height",
        "significant_wave_height",
        "sea_surface_height",
        "sea_water_pressure",
        "current_speed",
        "current_direction",
        "water_level",
        "tide_height",
        "sea_ice_concentration",
        "sea_floor_depth",
        "ocean_mixed_layer_depth",
        "sea_water_density",
        "sea_water_ph",
        "dissolved_oxygen",
        "turbidity",
        "sea_water_turbidity",
        "δ18O", "d18O", "oxygen isotope", "Uk'37", "UK37", "U37K'", "alkenone", "TEX86", "Mg/Ca",
    ],

    # Catalog variables offered when a name contains one of these and none of the exclusions
    "variable_fragments": [
        "sea_", "ocean_", "marine_", "temperature", "salinity", "current", "wave", "chlorophyll",
    ],
    "variable_exclusions": ["air_", "atmosphere"],

    # Suggestions containing these sort ahead of the rest
    "priority_fragments": ["sea_", "ocean_", "marine_", "chlorophyll", "wave_", "current_"],
}


# CONCURRENCY CONFIGURATION

CONCURRENCY_CONFIG = {
    "uvicorn_workers": 3,
    "search_thread_pool_size": 4,
    "search_timeout_seconds": 15.0,
}


# RATE LIMITING (boundary only)

RATE_LIMIT_CONFIG = {
    "enabled": os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true",
    # slowapi limit string, applied per client to search and stats endpoints
    "limit": os.getenv("RATE_LIMIT", "60/minute"),
}


# LOGGING CONFIGURATION

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_DIR = Path(os.getenv("LOG_DIR", str(BASE_DIR / "logs")))
LOG_DIR.mkdir(parents=True, exist_ok=True)

LOG_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "json": {
            "class": "pythonjsonlogger.json.JsonFormatter",
            "format": "%(asctime)s %(name)s %(levelname)s %(message)s"
        },
        "standard": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        }
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "level": LOG_LEVEL,
            "formatter": "standard",
            "stream": "ext://sys.stdout"
        },
        "api": {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": str(LOG_DIR / "api.log"),
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5,
            "formatter": "json",
            "level": LOG_LEVEL
        },
        "ingestion": {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": str(LOG_DIR / "ingestion.log"),
            "maxBytes": 10485760,
            "backupCount": 5,
            "formatter": "json",
            "level": LOG_LEVEL
        },
        "search": {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": str(LOG_DIR / "search.log"),
            "maxBytes": 10485760,
            "backupCount": 5,
            "formatter": "json",
            "level": LOG_LEVEL
        },
        "errors": {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": str(LOG_DIR / "errors.log"),
            "maxBytes": 10485760,
            "backupCount": 5,
            "formatter": "json",
            "level": "ERROR"
        }
    },
    "loggers": {
        "api": {
            "handlers": ["console", "api", "errors"],
            "level": LOG_LEVEL,
            "propagate": False
        },
        "ingestion": {
            "handlers": ["console", "ingestion", "errors"],
            "level": LOG_LEVEL,
            "propagate": False
        },
        "indexing": {
            "handlers": ["console", "ingestion", "errors"],
            "level": LOG_LEVEL,
            "propagate": False
        },
        "search": {
            "handlers": ["console", "search", "errors"],
            "level": LOG_LEVEL,
            "propagate": False
        },
        "": {  # Root logger
            "handlers": ["console", "errors"],
            "level": LOG_LEVEL
        }
    }
}


# API CONFIGURATION

API_CONFIG = {
    "host": os.getenv("API_HOST", "0.0.0.0"),
    "port": int(os.getenv("API_PORT", "8000")),
    "reload": os.getenv("RELOAD", "false").lower() == "true",
    "log_level": LOG_LEVEL.lower(),
    "cors_origins": [
        origin.strip()
        for origin in os.getenv(
            "CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000"
        ).split(",")
        if origin.strip()
    ],
}


# ENVIRONMENT

DEBUG = os.getenv("DEBUG", "false").lower() == "true"
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
