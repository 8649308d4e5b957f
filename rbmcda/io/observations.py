"""
Observation File I/O

Reads and writes observation sequences.

Primary format (XML, schema version 1.0):

    <observations version="1.0" deltaT="1.0">
      <frame t="0">
        <observation id="1" model="0" x="10.5" y="20.0" sqrtsize="3.2"/>
        ...
      </frame>
      ...
    </observations>

Fallback format (YAML region set, e.g. from a segmentation step):

    frames:
      - regions:
          - {id: 1, x: 10.5, y: 20.0, area: 10.24}
          - {id: 0, pixels: [[3, 4], [3, 5], [4, 4]]}

Regions become observations at their center of mass with
sqrt_size = sqrt(area). Region IDs become target IDs.
"""

import logging
import math
import os
import xml.etree.ElementTree as ET
from typing import Any, Dict, List

import numpy as np
import yaml

from rbmcda.datatypes import UNKNOWN_MODEL, MultiState, Observation

logger = logging.getLogger(__name__)

SCHEMA_VERSION = "1.0"
SUPPORTED_VERSIONS = ("1.0",)


class ObservationFormatError(ValueError):
    """Observation file could not be parsed."""


def write_observations(observations: MultiState, filepath: str) -> str:
    """
    Write an observation sequence in the XML format.

    Returns:
        Path of the written file
    """
    root = ET.Element(
        "observations", version=SCHEMA_VERSION, deltaT=repr(float(observations.delta_t))
    )
    for t, frame in enumerate(observations):
        frame_el = ET.SubElement(root, "frame", t=str(t))
        for obs in frame:
            ET.SubElement(
                frame_el,
                "observation",
                id=str(int(obs.target_id)),
                model=str(int(obs.model)),
                x=repr(float(obs.x)),
                y=repr(float(obs.y)),
                sqrtsize=repr(float(obs.sqrt_size)),
            )

    tree = ET.ElementTree(root)
    ET.indent(tree, space="  ")

    directory = os.path.dirname(filepath)
    if directory:
        os.makedirs(directory, exist_ok=True)
    tree.write(filepath, encoding="utf-8", xml_declaration=True)
    return filepath


def parse_observations_xml(filepath: str) -> MultiState:
    """
    Parse the XML observation format.

    Raises:
        ObservationFormatError: On malformed content or unsupported version
    """
    try:
        root = ET.parse(filepath).getroot()
    except ET.ParseError as e:
        raise ObservationFormatError(f"{filepath}: not valid XML ({e})") from e

    if root.tag != "observations":
        raise ObservationFormatError(f"{filepath}: unexpected root element <{root.tag}>")

    version = root.get("version", SCHEMA_VERSION)
    if version not in SUPPORTED_VERSIONS:
        raise ObservationFormatError(f"{filepath}: unsupported schema version {version}")

    try:
        delta_t = float(root.get("deltaT", 1.0))
        frames = []
        for frame_el in root.findall("frame"):
            frames.append(
                [
                    Observation(
                        x=float(el.attrib["x"]),
                        y=float(el.attrib["y"]),
                        sqrt_size=float(el.attrib["sqrtsize"]),
                        target_id=int(el.get("id", 0)),
                        model=int(el.get("model", UNKNOWN_MODEL)),
                    )
                    for el in frame_el.findall("observation")
                ]
            )
    except (KeyError, ValueError) as e:
        raise ObservationFormatError(f"{filepath}: invalid observation ({e})") from e

    return MultiState.from_lists(frames, delta_t=delta_t)


def read_region_set(filepath: str) -> List[List[Dict[str, Any]]]:
    """
    Read a YAML region set.

    Returns:
        Per frame, the list of region dictionaries

    Raises:
        ObservationFormatError: If the file is no region set
    """
    try:
        with open(filepath, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (yaml.YAMLError, UnicodeDecodeError) as e:
        raise ObservationFormatError(f"{filepath}: not valid YAML ({e})") from e

    if not isinstance(data, dict) or not isinstance(data.get("frames"), list):
        raise ObservationFormatError(f"{filepath}: missing 'frames' list")

    frames = []
    for t, frame in enumerate(data["frames"]):
        regions = frame.get("regions", []) if isinstance(frame, dict) else frame
        if not isinstance(regions, list):
            raise ObservationFormatError(f"{filepath}: frame {t} has no region list")
        frames.append(regions)
    return frames


def region_to_observation(region: Dict[str, Any]) -> Observation:
    """
    Convert one region to an observation.

    A region gives either its center of mass and area (x, y, area) or its
    pixel list (pixels: [[x, y], ...]).
    """
    target_id = int(region.get("id", 0))

    if "pixels" in region:
        pixels = np.asarray(region["pixels"], dtype=np.float64)
        if pixels.ndim != 2 or pixels.shape[1] != 2 or pixels.shape[0] == 0:
            raise ObservationFormatError(f"Region {target_id}: invalid pixel list")
        x, y = pixels.mean(axis=0)
        area = float(pixels.shape[0])
    else:
        x, y, area = float(region["x"]), float(region["y"]), float(region["area"])

    if area < 0:
        raise ObservationFormatError(f"Region {target_id}: negative area {area}")

    return Observation(x=float(x), y=float(y), sqrt_size=math.sqrt(area), target_id=target_id)


def regions_to_observations(regions: List[List[Dict[str, Any]]], delta_t: float = 1.0) -> MultiState:
    try:
        frames = [[region_to_observation(r) for r in frame] for frame in regions]
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise ObservationFormatError(f"Invalid region ({e})") from e
    return MultiState.from_lists(frames, delta_t=delta_t)


def read_observations(filepath: str) -> MultiState:
    """
    Load an observation sequence.

    Tries the XML format first, then falls back once to the YAML region set.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ObservationFormatError: If neither format can be parsed
    """
    if not os.path.exists(filepath):
        raise FileNotFoundError(f"Observation file not found: {filepath}")

    try:
        return parse_observations_xml(filepath)
    except ObservationFormatError as primary:
        logger.info("%s; trying region set format", primary)
        try:
            observations = regions_to_observations(read_region_set(filepath))
        except ObservationFormatError as fallback:
            raise ObservationFormatError(
                f"Failed to read observations from {filepath}: {primary}; {fallback}"
            ) from fallback

    logger.info("Converted region set %s to %d frames", filepath, observations.num_frames)
    return observations
