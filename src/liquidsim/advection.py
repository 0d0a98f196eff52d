"""Semi-Lagrangian velocity advection and body forces."""

from .interpolation import get_velocity, sample_u, sample_v, u_face_positions, v_face_positions


def trace_rk2(u, v, positions, dt, dx):
    """Trace points through the velocity field with one midpoint RK2 step.

    A negative ``dt`` traces backwards in time.
    """
    velocity = get_velocity(u, v, positions, dx)
    velocity = get_velocity(u, v, positions + 0.5 * dt * velocity, dx)
    return positions + dt * velocity


def advect_velocity(fields, dt, dx):
    """Advect both velocity components through themselves.

    All samples read the pre-advection field; results go to the scratch
    buffers which are then swapped in.
    """
    ni, nj = fields.shape

    departure = trace_rk2(fields.u, fields.v, u_face_positions(ni, nj, dx), -dt, dx)
    fields.temp_u[:] = sample_u(fields.u, departure, dx)

    departure = trace_rk2(fields.u, fields.v, v_face_positions(ni, nj, dx), -dt, dx)
    fields.temp_v[:] = sample_v(fields.v, departure, dx)

    fields.u, fields.temp_u = fields.temp_u, fields.u
    fields.v, fields.temp_v = fields.temp_v, fields.v


def add_force(fields, dt, gravity):
    """Apply a constant downward acceleration to every v face."""
    fields.v -= gravity * dt
