"""Prompts and output schemas for the media and generation stages."""

import json

from analyzer.schema import BlockIntent, SourceType, UpdateRule


def _values(enum_cls) -> str:
    return ", ".join(f'"{m.value}"' for m in enum_cls)


# =============================================================================
# Media adapters
# =============================================================================

FRAME_DESCRIPTION_PROMPT = """You are an expert at reading computer screenshots.

You will be given one frame from a screen recording of someone doing a task on their computer.

Describe, in 2-4 sentences:
- Which application and which window or page is visible
- The key content on screen (documents, fields, lists, dialogs)
- Any visible sign of user activity (cursor position, highlighted selection, text being typed, open menus)

Be literal. Describe only what is visible; do not guess what happens next."""

NARRATION_TRANSCRIPTION_PROMPT = """Transcribe the spoken narration in this audio recording.

Return only the transcribed words as plain text, in the order they were spoken.
If there is no intelligible speech, return an empty response."""


# =============================================================================
# Stage 1: raw transcript synthesis
# =============================================================================

TRANSCRIPT_SCHEMA = {
    "transcript": [
        {
            "time": "number - seconds from the start of the recording",
            "screen": "string - what is visible on screen at this moment",
            "action": "string - the discrete user action performed",
            "narration": "string - what the narrator says about this action",
        }
    ]
}

TRANSCRIPT_SYNTHESIS_PROMPT = """You are an expert at reconstructing computer workflows from screen recordings.

You will be given:
1. Time-stamped descriptions of frames sampled from a screen recording, in chronological order
2. The narration spoken during the recording, if any

Your job is to produce a single chronological list of DISCRETE WORKFLOW EVENTS. For each event provide:
- time: the approximate time in seconds, taken from the frame timestamps
- screen: what is on screen at that moment
- action: the user action that was performed
- narration: what the narrator said about it

Rules:
- The frame descriptions are authoritative for WHAT happened. Never let narration override or contradict what is visible.
- Use narration only to explain WHY, or to add context for the same time window.
- If no narration is available, write the narration field as a short paraphrase of the visible action.
- Merge consecutive frames that show the same unchanged screen into one event.
- Keep events in chronological order.

Return exactly one JSON object inside a ```json fenced block, matching the schema you are given. Do not return more than one JSON block."""


# =============================================================================
# Stage 2: step organization
# =============================================================================

ORGANIZED_WORKFLOW_SCHEMA = {
    "steps": [
        {
            "number": "integer - 1-based position of the step",
            "action": "string - summary of the logical step",
            "applications": ["string - applications involved (at least one)"],
            "primaryApplication": "string - optional, the main application for this step",
            "input": {"data": "string - data consumed", "source": "string - where it comes from"},
            "output": {"data": "string - data produced", "destination": "string - where it goes"},
            "considerations": ["string - things to watch out for"],
        }
    ],
    "patterns": ["string - recurring patterns in the workflow"],
    "conditionalLogic": ["string - decisions or branches the user makes"],
    "triggers": ["string - what starts this workflow"],
    "frequency": "string - how often the workflow is likely performed",
}

STEP_ORGANIZATION_PROMPT = """You are an expert business process analyst.

You will be given a chronological transcript of discrete events recorded while a user performed a task on their computer.

Your job is to organize these granular events into LOGICAL WORKFLOW STEPS:
- Combine consecutive or related events into one step (a step is a meaningful unit of work, not a single click)
- For each step, identify the applications involved, the input data and where it comes from, and the output data and where it goes
- Infer inputs, outputs and applications when they are not stated explicitly, but when the transcript says something literally, prefer it over inference
- Note considerations for each step (things that could go wrong or need care)
- Across the whole workflow, identify recurring patterns, conditional logic, triggers, and the likely frequency

Return exactly one JSON object inside a ```json fenced block, matching the schema you are given. Number steps 1, 2, 3, ... in order."""


# =============================================================================
# Stage 3: block graph generation
# =============================================================================

BLOCK_STRUCTURE_SCHEMA = {
    "blocks": [
        {
            "id": "string - unique id such as 'block-1'",
            "intent": f"one of: {_values(BlockIntent)}",
            "title": "string - short title",
            "description": "string - what the block does",
            "properties": {"key": "any - free-form details such as formats, formulas, recipients"},
            "applicationName": "string - optional, the application used",
        }
    ],
    "sources": [
        {
            "id": "string - unique id such as 'source-1'",
            "type": f"one of: {_values(SourceType)}",
            "location": "string - path, URL, or description",
            "updateRules": f"one of: {_values(UpdateRule)}",
        }
    ],
    "connections": [
        {
            "sourceBlockId": "string - id of an existing block",
            "targetBlockId": "string - id of an existing block",
            "dataType": "string - the data flowing along this edge",
            "updateRules": f"one of: {_values(UpdateRule)}",
        }
    ],
}

BLOCK_GENERATION_PROMPT = f"""You are an expert at modelling business workflows as data-flow graphs.

You will be given an organized workflow: a list of logical steps with their applications, inputs and outputs.

Convert it into a graph of BLOCKS, SOURCES and CONNECTIONS:
- A block is one action in the workflow. Choose its intent from exactly this list: {_values(BlockIntent)}.
- A source is external data the workflow reads. Its type is one of {_values(SourceType)}.
- A connection is data flowing from one block to another. Both ends must be ids of blocks you defined.
- updateRules is one of {_values(UpdateRule)} for both sources and connections.
- Every block id must be unique.
- Loops are allowed when the workflow repeats.

Return exactly one JSON object inside a ```json fenced block, matching the schema you are given. Use only the enum values listed above."""


def schema_text(schema: dict) -> str:
    """Render an output schema for inclusion in a prompt."""
    return json.dumps(schema, indent=2)
