#  -------------------------------------------------------------------------------------------
#  Copyright (c) Microsoft Corporation. All rights reserved.
#  Licensed under the MIT License (MIT). See LICENSE in the repo root for license information.
#  -------------------------------------------------------------------------------------------
"""
Turns the fields of a param.Parameterized config into commandline arguments, so that every setting of a remote
AutoML job can be overridden with `--field=value` without writing a separate argparse definition.
"""
from argparse import OPTIONAL, ArgumentDefaultsHelpFormatter, ArgumentParser
from dataclasses import dataclass
import logging
import sys
from typing import Any, Callable, Dict, List, Optional, Union

import param

logger = logging.getLogger(__name__)

EXPERIMENT_RUN_SEPARATOR = ":"


def parse_bool(x: str) -> bool:
    """
    Parse a string as a bool. Supported values are case insensitive and one of:
    'on', 't', 'true', 'y', 'yes', '1' for True
    'off', 'f', 'false', 'n', 'no', '0' for False.

    :param x: string to test.
    :return: Bool value if string valid, otherwise a ValueError is raised.
    """
    sx = str(x).lower()
    if sx in ("on", "t", "true", "y", "yes", "1"):
        return True
    if sx in ("off", "f", "false", "n", "no", "0"):
        return False
    raise ValueError(f"Invalid value {x}, please supply one of True, true, false or False.")


def _get_basic_type(_p: param.Parameter) -> Union[type, Callable]:
    """
    Given a parameter, get the function that converts a commandline string to its value, e.g.: param.Boolean -> bool.

    :param _p: parameter to get the converter for.
    :return: The converter function.
    :raises TypeError: If the parameter type is not supported.
    """
    get_type: Callable
    if isinstance(_p, param.Boolean):
        get_type = parse_bool
    elif isinstance(_p, param.Integer):

        def to_int(x: str) -> int:
            return _p.default if x == "" else int(x)

        get_type = to_int
    elif isinstance(_p, param.Number):

        def to_float(x: str) -> float:
            return _p.default if x == "" else float(x)

        get_type = to_float
    elif isinstance(_p, (param.String, param.Selector)):
        get_type = str
    elif isinstance(_p, param.List):

        def to_list(x: str) -> List[Any]:
            return [_p.item_type(item) if _p.item_type else item for item in x.split(",") if item]

        get_type = to_list
    elif isinstance(_p, param.ClassSelector):
        get_type = _p.class_
    else:
        raise TypeError(f"Parameter of type {_p} is not supported")
    return get_type


def _add_boolean_argument(parser: ArgumentParser, k: str, p: param.Parameter) -> None:
    """
    Add a boolean argument.
    If the parameter default is False then allow --flag (to set it True) and --flag=Bool as usual.
    If the parameter default is True then allow --no-flag (to set it to False) and --flag=Bool as usual.

    :param parser: parser to add a boolean argument to.
    :param k: argument name.
    :param p: boolean parameter.
    """
    if not p.default:
        parser.add_argument("--" + k, help=p.doc, type=parse_bool, default=False, nargs=OPTIONAL, const=True)
    else:
        group = parser.add_mutually_exclusive_group(required=False)
        group.add_argument("--" + k, help=p.doc, type=parse_bool)
        group.add_argument("--no-" + k, dest=k, action="store_false")
        parser.set_defaults(**{k: p.default})


def create_argparser(
    config: param.Parameterized,
    usage: Optional[str] = None,
    description: Optional[str] = None,
    epilog: Optional[str] = None,
) -> ArgumentParser:
    """
    Creates an ArgumentParser with all fields of the given config that are overridable.

    :param config: The config whose parameters should be used to populate the argument parser
    :param usage: Brief information about correct usage that is printed if the script started with "--help".
    :param description: A description of the program that is printed if the script is started with "--help"
    :param epilog: A text that is printed after the argument details if the script is started with "--help"
    :return: ArgumentParser
    """
    assert isinstance(config, param.Parameterized)
    parser = ArgumentParser(
        formatter_class=ArgumentDefaultsHelpFormatter, usage=usage, description=description, epilog=epilog
    )
    for k, p in get_overridable_parameters(config).items():
        if isinstance(p, param.Boolean):
            _add_boolean_argument(parser, k, p)
        else:
            parser.add_argument("--" + k, help=p.doc, type=_get_basic_type(p), default=getattr(config, k))
    return parser


@dataclass
class ParserResult:
    """
    Stores the results of running an argument parser, broken down into a argument-to-value dictionary and the
    arguments that the parser does not recognize.
    """

    args: Dict[str, Any]
    unknown: List[str]


def parse_arguments(
    parser: ArgumentParser, fail_on_unknown_args: bool = False, args: Optional[List[str]] = None
) -> ParserResult:
    """
    Parses a list of commandline arguments with a given parser.

    :param parser: The parser to use
    :param fail_on_unknown_args: If True, raise an exception if the parser encounters an argument that it does
        not recognize. If False, unrecognized arguments will be ignored, and added to the "unknown" field of
        the parser result.
    :param args: Arguments to parse. If not given, use those in sys.argv
    :return: The parsed arguments, and the unrecognized ones.
    """
    if args is None:
        args = sys.argv[1:]
    namespace, unknown = parser.parse_known_args(args)
    if len(unknown) > 0 and fail_on_unknown_args:
        raise ValueError(f"Unknown arguments: {unknown}")
    return ParserResult(args=vars(namespace).copy(), unknown=unknown)


def parse_args_and_update_config(config: Any, args: List[str], fail_on_unknown_args: bool = True) -> Any:
    """
    Given a config and a list of command line arguments, creates an argparser, adds arguments from the config,
    parses the list of provided args and updates the config accordingly. The config is validated afterwards.

    :param config: The configuration object to update.
    :param args: A list of command line args to parse
    :param fail_on_unknown_args: If True, raise a ValueError for arguments that the config does not define.
    :return: The config, updated with the values of the provided args
    """
    parser = create_argparser(config)
    parser_results = parse_arguments(parser, fail_on_unknown_args=fail_on_unknown_args, args=args)
    apply_overrides(config, parser_results.args, should_validate=True)
    return config


def get_overridable_parameters(config: Any) -> Dict[str, param.Parameter]:
    """
    Get properties that are not constant, readonly or private (eg: prefixed with an underscore).
    The parameter definitions are read from the class, so that this can be called while the config is still being
    initialized.

    :param config: The configuration object
    :return: A dictionary of parameter names and their definitions.
    """
    assert isinstance(config, param.Parameterized)
    parameters = type(config).param.objects(instance=False)
    return dict((k, v) for k, v in parameters.items() if reason_not_overridable(v) is None)


def is_private_field_name(name: str) -> bool:
    """
    A private field is any Python class member that starts with an underscore eg: _hello

    :param name: a string representing the name of the class member
    """
    return name.startswith("_")


def reason_not_overridable(value: param.Parameter) -> Optional[str]:
    """
    Given a parameter, check for attributes that denote it is not overrideable (e.g. readonly, constant,
    private etc). If such an attribute exists, return a string containing a single-word description of the
    reason. Otherwise returns None.

    :param value: a parameter value
    :return: None if the parameter is overridable; otherwise a one-word string explaining why not.
    """
    if value.readonly:
        return "readonly"
    elif value.constant:
        return "constant"
    elif is_private_field_name(value.name):
        return "private"
    elif isinstance(value, param.Callable):
        return "callable"
    return None


def apply_overrides(
    config: Any,
    overrides_to_apply: Optional[Dict[str, Any]],
    should_validate: bool = False,
) -> Dict[str, Any]:
    """
    Applies the provided overrides to the config. Only properties that are marked as overridable are actually
    overwritten.

    :param config: The configuration object
    :param overrides_to_apply: A dictionary mapping from field name to value.
    :param should_validate: If true, run the .validate() method after applying overrides.
    :return: A dictionary with all the fields that were modified.
    """
    applied: Dict[str, Any] = {}
    if overrides_to_apply is not None:
        overridable_parameters = get_overridable_parameters(config).keys()
        for k, v in overrides_to_apply.items():
            if k in overridable_parameters:
                applied[k] = v
                setattr(config, k, v)
    if should_validate:
        config.validate()
    return applied
