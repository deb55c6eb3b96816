import toolviper.utils.logger as logger


def check_params(parm_dict, string_key, acceptable_data_types, acceptable_data=None):
    """

    Parameters
    ----------
    parm_dict : dict
        The dictionary in which the parameter will be checked.
    string_key : str
        The key of the parameter to check
    acceptable_data_types : list
        A list of acceptable data types for the parameter
    acceptable_data : list
        A list of acceptable values for the parameter

    Returns
    -------
    parm_passed : bool

    """
    if string_key not in parm_dict:
        logger.error(f"Parameter {string_key} must be specified.")
        return False

    value = parm_dict[string_key]
    if not isinstance(value, tuple(acceptable_data_types)):
        logger.error(
            f"Parameter {string_key} must be of type {acceptable_data_types}, "
            f"got {type(value)}."
        )
        return False

    if acceptable_data is not None and value not in acceptable_data:
        logger.error(
            f"Invalid {string_key} {value!r}. Can only be one of {acceptable_data}."
        )
        return False
    return True
