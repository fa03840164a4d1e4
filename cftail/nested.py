"""
Discovery of nested stacks below a root stack.
"""

import logging
from typing import Iterable, List, Set

from .client import CloudStackClient
from .errors import ClassifiedError, ResourceFetchError
from .models import StackInfo, StackResource

logger = logging.getLogger(__name__)


def _fetch_resources(client: CloudStackClient, stack_name: str) -> List[StackResource]:
    try:
        return client.list_stack_resources(stack_name)
    except ClassifiedError as e:
        raise ResourceFetchError(stack_name) from e


def resolve_nested_stacks(client: CloudStackClient, root_stack_name: str) -> Set[str]:
    """
    Find the names of a root stack and every stack nested below it.

    Walks the resource graph: each ``AWS::CloudFormation::Stack`` resource is
    expanded through its physical id (the nested stack's ARN), and every
    resource found records the name of the stack that owns it.

    Args:
        client: CloudStackClient to query
        root_stack_name: Name of the stack the user asked for

    Returns:
        Set of stack names, including the root

    Raises:
        ResourceFetchError: If listing the resources of any stack fails
    """
    stacks = {root_stack_name}
    to_visit: List[str] = []
    expanded: Set[str] = set()

    def queue_children(resources: Iterable[StackResource]) -> None:
        for resource in resources:
            if not resource.is_nested_stack:
                continue
            if resource.physical_resource_id is None:
                # nested stack not created yet
                logger.debug(f"Skipping nested stack {resource.logical_resource_id} without a physical id")
                continue
            to_visit.append(resource.physical_resource_id)

    queue_children(_fetch_resources(client, root_stack_name))

    while to_visit:
        physical_id = to_visit.pop()
        if physical_id in expanded:
            continue
        expanded.add(physical_id)

        resources = _fetch_resources(client, physical_id)
        for resource in resources:
            stacks.add(resource.stack_name)
        queue_children(resources)

    logger.info(f"Found {len(stacks)} stacks under {root_stack_name}")
    return stacks


def build_stack_info(client: CloudStackClient, stack_names: Iterable[str], nested: bool) -> StackInfo:
    """
    Build the set of stacks to watch.

    Args:
        client: CloudStackClient to query
        stack_names: Stacks requested by the user
        nested: Whether to include nested stacks

    Returns:
        StackInfo with the full watch set and the original names
    """
    original_names = list(stack_names)
    if not nested:
        return StackInfo.from_names(original_names, original_names)

    names: Set[str] = set()
    for stack_name in original_names:
        names.update(resolve_nested_stacks(client, stack_name))
    return StackInfo.from_names(names, original_names)
