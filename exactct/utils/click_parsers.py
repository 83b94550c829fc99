def split_to_list(ctx, param, value, nargs:int=None):
    if value is None or len(value) == 0:
        return None
    else:
        return [list(v.split("&")) for v in list(value) if v is not None][:nargs]

def facets_callback(ctx, param, value):
    facets = split_to_list(ctx, param, value)
    if facets is None:
        return None
    # Axis indices are integers, anything else is a variable name
    return [
        [int(var) if var.strip().isdigit() else var.strip() for var in facet]
        for facet in facets
    ]
