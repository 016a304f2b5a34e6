#!/usr/bin/env python3
"""
fcptimeline MCP Server - Exact FCPXML time math and timeline layout as tools.

Provides tools for parsing FCPXML time values, converting to and from SMPTE
timecode, conforming to frame boundaries, and placing clips on JSON
timelines with ripple inserts and automatic lane assignment.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Sequence

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from fcptimeline.editor import (
    DEFAULT_MAX_LANE_SEARCH_STEPS,
    insert_auto_lane,
    insert_with_ripple,
)
from fcptimeline.errors import NoAvailableLaneError
from fcptimeline.models import (
    ClipPlacement,
    RationalTime,
    RippleScope,
    TimecodeComponents,
    Timeline,
    TimelineClip,
)
from fcptimeline.timing import (
    ceil_to_frame,
    conform,
    format_time_text,
    parse_time_text,
    round_to_frame,
    timecode_to_time,
    to_timecode,
)

logger = logging.getLogger("fcptimeline-server")

server = Server("fcptimeline-server")

# JSON schema fragments shared by the timeline tools
_TIMELINE_SCHEMA = {
    "type": "object",
    "description": (
        "Timeline as JSON: {name, format?: {width, height, frameDuration, colorSpace}, "
        "clips: [{ref, offset, duration, start?, lane?, name?, videoDisabled?}]}"
    ),
}
_CLIP_SCHEMA = {
    "type": "object",
    "description": "Clip as JSON: {ref, duration, start?, name?, videoDisabled?}",
}
_TIME_SCHEMA = {"type": "string", "description": "FCPXML time, e.g. '7200/2400s', '5s' or '0s'"}


# ============================================================================
# UTILITIES
# ============================================================================

def format_duration(seconds: float) -> str:
    """Format seconds into human-readable duration."""
    if abs(seconds) < 1:
        return f"{seconds*1000:.0f}ms"
    elif abs(seconds) < 60:
        return f"{seconds:.2f}s"
    return f"{int(seconds // 60)}m {seconds % 60:.1f}s"


def _time_arg(arguments: dict, key: str, default: str | None = None) -> RationalTime:
    """Read a time argument. Missing required keys raise; malformed text reads as zero."""
    if key not in arguments:
        if default is None:
            raise ValueError(f"Missing required argument: {key}")
        return parse_time_text(default)
    return parse_time_text(str(arguments[key]))


def _frame_duration_arg(arguments: dict, key: str = "frame_duration") -> RationalTime:
    frame_duration = _time_arg(arguments, key)
    if not frame_duration.is_positive:
        raise ValueError(f"{key} must be a positive FCPXML time, got '{arguments[key]}'")
    return frame_duration


def _timeline_arg(arguments: dict) -> Timeline:
    """Read the timeline argument from a JSON object or a JSON string."""
    data = arguments.get("timeline")
    if data is None:
        raise ValueError("Missing required argument: timeline")
    if isinstance(data, str):
        data = json.loads(data)
    if not isinstance(data, dict):
        raise ValueError("timeline must be a JSON object")
    return Timeline.from_dict(data)


def _clip_arg(arguments: dict) -> TimelineClip:
    data = arguments.get("clip")
    if isinstance(data, str):
        data = json.loads(data)
    if not isinstance(data, dict):
        raise ValueError("clip must be a JSON object")
    return TimelineClip.from_dict(data)


def _ripple_scope_arg(value: Any) -> RippleScope:
    """Accept 'all', 'primary', a lane number, or a [low, high] lane pair."""
    if value is None or value == "all":
        return RippleScope.ALL
    if value == "primary":
        return RippleScope.PRIMARY_ONLY
    if isinstance(value, int) and not isinstance(value, bool):
        return RippleScope.single(value)
    if isinstance(value, (list, tuple)) and len(value) == 2:
        return RippleScope.lane_range(int(value[0]), int(value[1]))
    raise ValueError(f"Invalid ripple scope: {value!r}. Use 'all', 'primary', a lane, or [low, high]")


def _placement_dict(placement: ClipPlacement) -> dict:
    return {
        "clipIndex": placement.clip_index,
        "offset": format_time_text(placement.offset),
        "duration": format_time_text(placement.duration),
        "lane": placement.lane,
    }


def _json_text(payload: dict) -> Sequence[TextContent]:
    return [TextContent(type="text", text=json.dumps(payload, indent=2))]


# ============================================================================
# TOOL DEFINITIONS
# ============================================================================

@server.list_tools()
async def list_tools() -> list[Tool]:
    return [
        # ===== TIME TOOLS =====
        Tool(
            name="parse_time",
            description="Parse an FCPXML time value and show its exact fraction, seconds, and optional timecode",
            inputSchema={
                "type": "object",
                "properties": {
                    "time": _TIME_SCHEMA,
                    "frame_duration": {"type": "string", "description": "Frame duration for timecode, e.g. '1001/30000s'"},
                    "drop_frame": {"type": "boolean", "default": False},
                },
                "required": ["time"]
            }
        ),
        Tool(
            name="time_to_timecode",
            description="Convert an FCPXML time to SMPTE timecode at a frame duration",
            inputSchema={
                "type": "object",
                "properties": {
                    "time": _TIME_SCHEMA,
                    "frame_duration": {"type": "string"},
                    "drop_frame": {"type": "boolean", "default": False},
                },
                "required": ["time", "frame_duration"]
            }
        ),
        Tool(
            name="timecode_to_time",
            description="Convert SMPTE timecode (HH:MM:SS:FF or HH:MM:SS;FF) to an exact FCPXML time",
            inputSchema={
                "type": "object",
                "properties": {
                    "timecode": {"type": "string"},
                    "frame_duration": {"type": "string"},
                },
                "required": ["timecode", "frame_duration"]
            }
        ),
        Tool(
            name="conform_time",
            description="Snap an FCPXML time to a frame boundary (floor by default)",
            inputSchema={
                "type": "object",
                "properties": {
                    "time": _TIME_SCHEMA,
                    "frame_duration": {"type": "string"},
                    "mode": {"type": "string", "enum": ["floor", "round", "ceil"], "default": "floor"},
                },
                "required": ["time", "frame_duration"]
            }
        ),

        # ===== TIMELINE TOOLS =====
        Tool(
            name="ripple_insert",
            description="Insert a clip and push every clip at or after the insert point downstream",
            inputSchema={
                "type": "object",
                "properties": {
                    "timeline": _TIMELINE_SCHEMA,
                    "clip": _CLIP_SCHEMA,
                    "offset": _TIME_SCHEMA,
                    "lane": {"type": "integer", "default": 0},
                    "ripple": {
                        "description": "'all', 'primary', a lane number, or [low, high]",
                        "default": "all",
                    },
                },
                "required": ["timeline", "clip", "offset"]
            }
        ),
        Tool(
            name="auto_lane_insert",
            description="Insert a clip without moving others, picking the nearest free lane on conflict",
            inputSchema={
                "type": "object",
                "properties": {
                    "timeline": _TIMELINE_SCHEMA,
                    "clip": _CLIP_SCHEMA,
                    "offset": _TIME_SCHEMA,
                    "preferred_lane": {"type": "integer", "default": 0},
                    "auto_assign": {"type": "boolean", "default": True},
                    "max_search_steps": {"type": "integer", "default": DEFAULT_MAX_LANE_SEARCH_STEPS},
                },
                "required": ["timeline", "clip", "offset"]
            }
        ),
        Tool(
            name="query_timeline",
            description="List clip placements, optionally filtered by lane, time range, or asset reference",
            inputSchema={
                "type": "object",
                "properties": {
                    "timeline": _TIMELINE_SCHEMA,
                    "lane": {"type": "integer"},
                    "start": _TIME_SCHEMA,
                    "end": _TIME_SCHEMA,
                    "asset_ref": {"type": "string"},
                },
                "required": ["timeline"]
            }
        ),
    ]


# ============================================================================
# TOOL HANDLERS - Each tool gets its own function
# ============================================================================

# ----- TIME HANDLERS -----

async def handle_parse_time(arguments: dict) -> Sequence[TextContent]:
    time = _time_arg(arguments, "time")
    reduced = time.reduced()
    result = f"""# Time: {format_time_text(time)}

- **Fraction**: {time.numerator}/{time.timescale}
- **Reduced**: {format_time_text(reduced)}
- **Seconds**: {time.seconds:.6f} ({format_duration(time.seconds)})
- **Counter**: {time.counter().counter_string}
"""
    if arguments.get("frame_duration"):
        frame_duration = _frame_duration_arg(arguments)
        tc = to_timecode(time, frame_duration, drop_frame=arguments.get("drop_frame", False))
        result += f"- **Timecode**: {tc.to_smpte()} @ {format_time_text(frame_duration)}\n"
    return [TextContent(type="text", text=result)]


async def handle_time_to_timecode(arguments: dict) -> Sequence[TextContent]:
    time = _time_arg(arguments, "time")
    frame_duration = _frame_duration_arg(arguments)
    tc = to_timecode(time, frame_duration, drop_frame=arguments.get("drop_frame", False))
    return [TextContent(type="text", text=tc.to_smpte())]


async def handle_timecode_to_time(arguments: dict) -> Sequence[TextContent]:
    components = TimecodeComponents.parse(arguments["timecode"])
    frame_duration = _frame_duration_arg(arguments)
    return [TextContent(type="text", text=format_time_text(timecode_to_time(components, frame_duration)))]


async def handle_conform_time(arguments: dict) -> Sequence[TextContent]:
    modes = {"floor": conform, "round": round_to_frame, "ceil": ceil_to_frame}
    mode = arguments.get("mode", "floor")
    if mode not in modes:
        raise ValueError(f"Invalid mode '{mode}'. Valid modes: {', '.join(modes)}")
    time = _time_arg(arguments, "time")
    frame_duration = _frame_duration_arg(arguments)
    conformed = modes[mode](time, frame_duration)
    return [TextContent(type="text", text=format_time_text(conformed))]


# ----- TIMELINE HANDLERS -----

async def handle_ripple_insert(arguments: dict) -> Sequence[TextContent]:
    timeline = _timeline_arg(arguments)
    clip = _clip_arg(arguments)
    new_timeline, result = insert_with_ripple(
        timeline,
        clip,
        _time_arg(arguments, "offset"),
        lane=int(arguments.get("lane", 0)),
        ripple_scope=_ripple_scope_arg(arguments.get("ripple")),
    )
    return _json_text({
        "timeline": new_timeline.to_dict(),
        "inserted": _placement_dict(result.inserted_clip),
        "shifted": [
            {
                "clipIndex": s.clip_index,
                "originalOffset": format_time_text(s.original_offset),
                "newOffset": format_time_text(s.new_offset),
            }
            for s in result.shifted_clips
        ],
    })


async def handle_auto_lane_insert(arguments: dict) -> Sequence[TextContent]:
    timeline = _timeline_arg(arguments)
    clip = _clip_arg(arguments)
    new_timeline, placement = insert_auto_lane(
        timeline,
        clip,
        _time_arg(arguments, "offset"),
        preferred_lane=int(arguments.get("preferred_lane", 0)),
        auto_assign=bool(arguments.get("auto_assign", True)),
        max_search_steps=int(arguments.get("max_search_steps", DEFAULT_MAX_LANE_SEARCH_STEPS)),
    )
    return _json_text({
        "timeline": new_timeline.to_dict(),
        "inserted": _placement_dict(placement),
    })


async def handle_query_timeline(arguments: dict) -> Sequence[TextContent]:
    timeline = _timeline_arg(arguments)
    if "start" in arguments or "end" in arguments:
        placements = timeline.placements_in_range(
            _time_arg(arguments, "start", "0s"), _time_arg(arguments, "end"),
        )
    else:
        placements = timeline.all_placements()
    if "lane" in arguments:
        placements = [p for p in placements if p.lane == int(arguments["lane"])]
    if "asset_ref" in arguments:
        placements = [p for p in placements
                      if timeline.clips[p.clip_index].asset_ref == arguments["asset_ref"]]

    frame_duration = timeline.format.frame_duration if timeline.format else None
    lanes = timeline.lane_range
    result = f"# Clips in {timeline.name}\n\n"
    result += f"- **Duration**: {format_time_text(timeline.duration)}\n"
    result += f"- **Lanes**: {f'{lanes[0]} to {lanes[1]}' if lanes else 'none'}\n\n"
    result += "| # | Ref | Lane | Offset | Duration | Timecode |\n|---|-----|------|--------|----------|----------|\n"
    for p in placements:
        clip = timeline.clips[p.clip_index]
        tc = to_timecode(p.offset, frame_duration).to_smpte() if frame_duration else "-"
        result += (
            f"| {p.clip_index} | {clip.asset_ref} | {p.lane} | {format_time_text(p.offset)} "
            f"| {format_time_text(p.duration)} | {tc} |\n"
        )
    return [TextContent(type="text", text=result)]


# ============================================================================
# TOOL DISPATCH
# ============================================================================

TOOL_HANDLERS = {
    # Time
    "parse_time": handle_parse_time,
    "time_to_timecode": handle_time_to_timecode,
    "timecode_to_time": handle_timecode_to_time,
    "conform_time": handle_conform_time,
    # Timeline
    "ripple_insert": handle_ripple_insert,
    "auto_lane_insert": handle_auto_lane_insert,
    "query_timeline": handle_query_timeline,
}


@server.call_tool()
async def call_tool(name: str, arguments: dict[str, Any]) -> Sequence[TextContent]:
    handler = TOOL_HANDLERS.get(name)
    if not handler:
        return [TextContent(type="text", text=f"Unknown tool: {name}")]
    try:
        return await handler(arguments)
    except NoAvailableLaneError as e:
        return [TextContent(type="text", text=f"Placement conflict: {e}")]
    except KeyError as e:
        return [TextContent(type="text", text=f"Missing argument: {e}")]
    except (ValueError, TypeError, OverflowError) as e:
        return [TextContent(type="text", text=f"Validation error: {e}")]
    except Exception as e:
        logger.exception(f"Error in tool {name}")
        return [TextContent(type="text", text=f"Error: {type(e).__name__}")]


# ============================================================================
# MAIN
# ============================================================================

async def main():
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def main_sync():
    """Synchronous entry point for use as a console script."""
    import asyncio
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())


if __name__ == "__main__":
    main_sync()
